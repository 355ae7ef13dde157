from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional
import httpx
from loguru import logger
from src.api.models.project import ProjectInfo
from src.api.models.run import RunOutcome
from src.api.models.test_case import TestCaseDefinition, TestCaseInfo
from src.client.errors import ApiError
from src.config.settings import settings

class TestBoardClient:
    """服务端API客户端

    所有接口都返回 {code, message, data} 结构，这里负责拆包和错误转换。
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {}
        token = token if token is not None else settings.client.CLIENT_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.client.CLIENT_API_BASE_URL,
            headers=headers,
            timeout=timeout or settings.client.CLIENT_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "TestBoardClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _unwrap(response: httpx.Response) -> Any:
        """拆出响应中的 data，错误状态转换为 ApiError"""
        if response.is_success:
            # 204 等空响应没有 data
            if not response.content:
                return None
            body = response.json()
            return body.get("data") if isinstance(body, dict) else body

        message = response.reason_phrase or f"HTTP {response.status_code}"
        try:
            body = response.json()
            if isinstance(body, dict) and body.get("message"):
                message = body["message"]
        except ValueError:
            pass
        raise ApiError(response.status_code, message)

    async def get_test_case(self, test_case_id: str) -> TestCaseInfo:
        response = await self._client.get(f"/test-cases/{test_case_id}")
        return TestCaseInfo.model_validate(self._unwrap(response))

    async def get_project(self, project_id: str) -> ProjectInfo:
        response = await self._client.get(f"/projects/{project_id}")
        return ProjectInfo.model_validate(self._unwrap(response))

    async def update_test_case(self, test_case_id: str, definition: TestCaseDefinition) -> TestCaseInfo:
        response = await self._client.put(f"/test-cases/{test_case_id}", json=definition.to_payload())
        return TestCaseInfo.model_validate(self._unwrap(response))

    async def create_test_case(self, project_id: str, definition: TestCaseDefinition) -> TestCaseInfo:
        response = await self._client.post(f"/projects/{project_id}/test-cases", json=definition.to_payload())
        return TestCaseInfo.model_validate(self._unwrap(response))

    async def save_run(self, test_case_id: str, outcome: RunOutcome) -> None:
        response = await self._client.post(
            f"/test-cases/{test_case_id}/run",
            json=outcome.model_dump(by_alias=True, mode="json", exclude_none=True),
        )
        self._unwrap(response)
        logger.debug(f"运行结果已保存: {test_case_id} [{outcome.status.value}]")

    @asynccontextmanager
    async def stream_run(self, definition: TestCaseDefinition) -> AsyncIterator[httpx.Response]:
        """发起运行请求，返回未读取的流式响应

        运行可能持续很久，读取不设超时，只能通过取消来中断。
        """
        timeout = httpx.Timeout(settings.client.CLIENT_TIMEOUT, read=None)
        async with self._client.stream(
            "POST",
            "/run-test",
            json=definition.to_payload(),
            headers={"Accept": "text/event-stream"},
            timeout=timeout,
        ) as response:
            yield response
