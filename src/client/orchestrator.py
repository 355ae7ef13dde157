import asyncio
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlencode
from loguru import logger
from pydantic import ValidationError
from src.api.models.run import EVENT_TYPES, RunEvent, RunOutcome, StatusRecord, TestStatus, now_ms, parse_run_event
from src.api.models.test_case import TestCaseDefinition, TestCaseMode, derive_mode
from src.client.api_client import TestBoardClient
from src.client.errors import ApiError, ExecutionError, PersistenceError, RunInProgressError
from src.client.sse import SSEDecoder, parse_record

CANCELLED_MESSAGE = "Test was cancelled by user"
UNEXPECTED_TERMINATION_MESSAGE = "Test run terminated unexpectedly (possibly timed out)"

@dataclass(frozen=True)
class RunLocation:
    """页面地址上的查询参数：projectId / testCaseId / name"""
    project_id: Optional[str] = None
    test_case_id: Optional[str] = None
    name: Optional[str] = None

    def to_query(self) -> str:
        params = {
            "testCaseId": self.test_case_id,
            "projectId": self.project_id,
            "name": self.name,
        }
        return "?" + urlencode({k: v for k, v in params.items() if v})

@dataclass
class RunState:
    """当前运行的实时状态"""
    status: TestStatus = TestStatus.IDLE
    events: List[RunEvent] = field(default_factory=list)
    error: Optional[str] = None

StateListener = Callable[[RunState], None]
LocationListener = Callable[[RunLocation], None]

class RunSession:
    """单个用例运行页面的编排器

    负责在运行前保存(更新或新建)用例定义，消费执行器的事件流，
    处理取消，并在结束时保存一条运行记录。同一时间只允许一个运行。

    状态流转: IDLE -> RUNNING -> PASS / FAIL / CANCELLED，下一次运行重新进入 RUNNING。
    """

    def __init__(
        self,
        client: TestBoardClient,
        location: Optional[RunLocation] = None,
        on_update: Optional[StateListener] = None,
        on_location_change: Optional[LocationListener] = None,
    ):
        self.client = client
        self.location = location or RunLocation()
        self.state = RunState()
        self.is_loading = False

        # 加载时的用例数据，用于判断名称/模式是否变化
        self.initial_data: Optional[TestCaseDefinition] = None
        self.original_name: Optional[str] = None
        self.original_mode: Optional[TestCaseMode] = None
        self.project_id_from_test_case: Optional[str] = None
        self.project_name: str = ""

        self._on_update = on_update
        self._on_location_change = on_location_change
        self._events_snapshot: List[RunEvent] = []
        self._cancel_snapshot: Optional[List[RunEvent]] = None
        self._cancel_requested = False
        self._run_task: Optional[asyncio.Task] = None

    @property
    def test_case_id(self) -> Optional[str]:
        return self.location.test_case_id

    @property
    def effective_project_id(self) -> Optional[str]:
        return self.location.project_id or self.project_id_from_test_case

    # ---- 加载 ----

    async def load(self) -> Optional[TestCaseDefinition]:
        """根据地址参数预取用例定义和项目名称"""
        if self.location.project_id:
            await self._fetch_project_name(self.location.project_id)

        if self.location.test_case_id:
            await self._fetch_test_case(self.location.test_case_id)
        elif self.location.name:
            # 从用例列表页带名称进入，新建运行
            self.initial_data = TestCaseDefinition(name=self.location.name, url="", prompt="")
        return self.initial_data

    async def _fetch_test_case(self, test_case_id: str) -> None:
        try:
            data = await self.client.get_test_case(test_case_id)
        except Exception as e:
            logger.error(f"获取用例失败: {test_case_id}, {str(e)}")
            return

        self.initial_data = TestCaseDefinition(
            name=data.name,
            url=data.url,
            prompt=data.prompt,
            username=data.username or "",
            password=data.password or "",
            steps=data.steps,
            browser_config=data.browser_config,
        )
        self.original_name = data.name
        self.original_mode = derive_mode(data.steps, data.browser_config)
        self.project_id_from_test_case = data.project_id
        if not self.location.project_id:
            await self._fetch_project_name(data.project_id)

    async def _fetch_project_name(self, project_id: str) -> None:
        try:
            project = await self.client.get_project(project_id)
            self.project_name = project.name
        except Exception as e:
            logger.error(f"获取项目名称失败: {project_id}, {str(e)}")

    # ---- 运行 ----

    def cancel(self) -> None:
        """取消进行中的运行，空闲时无操作"""
        if not self.is_loading or self._cancel_requested:
            return
        self._cancel_requested = True
        self._cancel_snapshot = list(self._events_snapshot)
        if self._run_task and not self._run_task.done():
            self._run_task.cancel()
        logger.info("已请求取消运行")

    async def run(self, definition: TestCaseDefinition) -> RunState:
        """保存用例定义并运行，返回最终状态

        Raises:
            RunInProgressError: 已有运行在进行中
        """
        if self.is_loading:
            raise RunInProgressError("已有运行在进行中")

        self.is_loading = True
        self._events_snapshot = []
        self._cancel_snapshot = None
        self._cancel_requested = False
        self._set_state(RunState(status=TestStatus.RUNNING))

        try:
            try:
                active_test_case_id = await self._persist_definition(definition)
            except PersistenceError as e:
                logger.error(str(e))
                self._set_state(RunState(status=TestStatus.FAIL, error=str(e)))
                return self.state

            await self._execute_and_record(definition, active_test_case_id)
            return self.state
        finally:
            self._run_task = None
            self.is_loading = False

    async def _persist_definition(self, definition: TestCaseDefinition) -> Optional[str]:
        """运行前保存用例定义，返回之后使用的用例ID

        名称和模式都未变化时更新原用例；编辑时名称或模式变化、
        或者新建且有项目和名称时新建用例；都不满足时不保存直接运行。
        """
        active_test_case_id = self.location.test_case_id
        current_mode = definition.mode

        name_changed = bool(self.original_name and definition.name and definition.name != self.original_name)
        mode_changed = bool(self.original_mode and current_mode != self.original_mode)
        should_create_new = name_changed or mode_changed

        try:
            if active_test_case_id and not should_create_new:
                try:
                    await self.client.update_test_case(active_test_case_id, definition)
                except ApiError as e:
                    raise PersistenceError(f"Failed to update test case: {e.message}") from e

            elif (active_test_case_id and should_create_new) or (
                not active_test_case_id and self.location.project_id and definition.name
            ):
                project_id = self.effective_project_id
                if project_id:
                    try:
                        created = await self.client.create_test_case(project_id, definition)
                    except ApiError as e:
                        raise PersistenceError(f"Failed to create test case: {e.message}") from e

                    active_test_case_id = created.id
                    # 记下新值，避免下次运行重复新建
                    self.original_name = definition.name or None
                    self.original_mode = current_mode
                    self._set_location(RunLocation(project_id=project_id, test_case_id=created.id))
                    logger.info(f"已新建用例: {created.id} ({created.name})")
            else:
                logger.info("没有项目信息，运行结果不会被保存")
        except PersistenceError:
            raise
        except Exception as e:
            # 网络错误或响应体无法解析
            raise PersistenceError(f"Failed to save test case: {str(e) or type(e).__name__}") from e

        return active_test_case_id

    async def _execute_and_record(self, definition: TestCaseDefinition, test_case_id: Optional[str]) -> None:
        """执行运行并保存一条运行记录"""
        try:
            if self._cancel_requested:
                raise asyncio.CancelledError()
            self._run_task = asyncio.create_task(self._execute(definition))
            status, events, error = await self._run_task
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            events = self._cancel_snapshot if self._cancel_snapshot is not None else list(self._events_snapshot)
            self._set_state(RunState(status=TestStatus.CANCELLED, events=list(events), error=CANCELLED_MESSAGE))
            await self._save_outcome(test_case_id, TestStatus.CANCELLED, events, CANCELLED_MESSAGE, definition)
            return
        except Exception as e:
            message = str(e) or "An unexpected error occurred"
            logger.error(f"运行失败: {message}")
            self._set_state(replace(self.state, status=TestStatus.FAIL, error=message))
            await self._save_outcome(test_case_id, TestStatus.FAIL, [], message, definition)
            return

        await self._save_outcome(test_case_id, status, events, error, definition)

    async def _execute(self, definition: TestCaseDefinition) -> Tuple[TestStatus, List[RunEvent], Optional[str]]:
        """发起运行请求并读取事件流直到结束"""
        final_status: Optional[TestStatus] = None
        final_error: Optional[str] = None

        async with self.client.stream_run(definition) as response:
            if not response.is_success:
                raise ExecutionError(f"HTTP error! status: {response.status_code}")

            decoder = SSEDecoder()
            async for chunk in response.aiter_text():
                for record in decoder.feed(chunk):
                    final_status, final_error = self._handle_record(record, final_status, final_error)
            for record in decoder.flush():
                final_status, final_error = self._handle_record(record, final_status, final_error)

        if final_status is None:
            # 没收到状态记录，通常是执行器崩溃或超时
            final_status = TestStatus.FAIL
            final_error = UNEXPECTED_TERMINATION_MESSAGE
            self._set_state(replace(self.state, status=final_status, error=final_error))

        return final_status, list(self._events_snapshot), final_error

    def _handle_record(
        self,
        record: str,
        final_status: Optional[TestStatus],
        final_error: Optional[str]
    ) -> Tuple[Optional[TestStatus], Optional[str]]:
        """处理一条SSE记录，返回更新后的最终状态和错误"""
        try:
            payload = parse_record(record)
            if payload is None:
                return final_status, final_error

            event_type = payload.get("type")
            if event_type in EVENT_TYPES:
                event = parse_run_event(payload, timestamp=now_ms())
                self._events_snapshot.append(event)
                self._set_state(replace(self.state, events=[*self.state.events, event]))
            elif event_type == "status":
                # 收到最终状态后继续读完剩余数据
                status_record = StatusRecord.model_validate(payload)
                final_status = TestStatus(status_record.status)
                final_error = status_record.error
                self._set_state(replace(self.state, status=final_status, error=final_error))
            else:
                logger.debug(f"忽略未知类型的记录: {event_type}")
        except (ValueError, ValidationError) as e:
            logger.warning(f"解析SSE数据失败，已跳过: {str(e)}")
        return final_status, final_error

    async def _save_outcome(
        self,
        test_case_id: Optional[str],
        status: TestStatus,
        events: List[RunEvent],
        error: Optional[str],
        definition: TestCaseDefinition
    ) -> None:
        """保存运行记录，失败只记录日志"""
        if not test_case_id:
            return
        try:
            outcome = RunOutcome(status=status, events=list(events), error=error, test_config=definition)
            await self.client.save_run(test_case_id, outcome)
        except Exception as e:
            logger.error(f"保存运行记录失败: {test_case_id} [{status.value}], {str(e)}")

    # ---- 状态通知 ----

    def _set_state(self, state: RunState) -> None:
        self.state = state
        if self._on_update:
            self._on_update(state)

    def _set_location(self, location: RunLocation) -> None:
        self.location = location
        if self._on_location_change:
            self._on_location_change(location)
