import time
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, List, Literal, Optional, Union
from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, field_validator, model_validator
from .base import CamelModel
from .test_case import TestCaseDefinition

class TestStatus(str, Enum):
    """运行状态"""
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    PASS = "PASS"
    FAIL = "FAIL"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (TestStatus.PASS, TestStatus.FAIL, TestStatus.CANCELLED)

class LogLevel(str, Enum):
    INFO = "info"
    ERROR = "error"
    SUCCESS = "success"

class LogData(BaseModel):
    message: str
    level: LogLevel = LogLevel.INFO

class ScreenshotData(BaseModel):
    src: str
    label: str = ""

def now_ms() -> int:
    """当前时间戳(毫秒)"""
    return int(time.time() * 1000)

class _RunEventBase(CamelModel):
    DATA_KEYS: ClassVar[tuple] = ()

    timestamp: int = Field(default_factory=now_ms)
    browser_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_payload(cls, value: Any) -> Any:
        # 执行器可能直接把 message/level 或 src/label 放在顶层
        if isinstance(value, dict) and "data" not in value:
            data_keys = cls.DATA_KEYS
            data = {k: value[k] for k in data_keys if k in value}
            value = {k: v for k, v in value.items() if k not in data_keys}
            value["data"] = data
        return value

class LogEvent(_RunEventBase):
    """日志事件"""
    type: Literal["log"] = "log"
    data: LogData

    DATA_KEYS: ClassVar[tuple] = ("message", "level")

class ScreenshotEvent(_RunEventBase):
    """截图事件"""
    type: Literal["screenshot"] = "screenshot"
    data: ScreenshotData

    DATA_KEYS: ClassVar[tuple] = ("src", "label")

RunEvent = Annotated[Union[LogEvent, ScreenshotEvent], Field(discriminator="type")]

EVENT_TYPES = ("log", "screenshot")

_run_event_adapter = TypeAdapter(RunEvent)

def parse_run_event(payload: dict, timestamp: Optional[int] = None) -> Union[LogEvent, ScreenshotEvent]:
    """把流中的一条 log/screenshot 记录解析为事件，并打上采集时间"""
    if timestamp is not None:
        payload = {**payload, "timestamp": timestamp}
    return _run_event_adapter.validate_python(payload)

class StatusRecord(BaseModel):
    """流中的最终状态记录，只接受终态"""
    type: Literal["status"] = "status"
    status: Literal["PASS", "FAIL", "CANCELLED"]
    error: Optional[str] = None

def is_log_data(data: Any) -> bool:
    """判断未类型化的负载是否为日志数据"""
    return isinstance(data, dict) and isinstance(data.get("message"), str) and isinstance(data.get("level"), str)

def is_screenshot_data(data: Any) -> bool:
    """判断未类型化的负载是否为截图数据"""
    return isinstance(data, dict) and isinstance(data.get("src"), str)

class RunOutcome(CamelModel):
    """一次运行的最终结果，每次运行保存一次"""
    status: TestStatus
    events: List[RunEvent] = Field(
        default_factory=list,
        validation_alias=AliasChoices("events", "result"),
    )
    error: Optional[str] = None
    test_config: TestCaseDefinition = Field(
        validation_alias=AliasChoices("testConfig", "test_config"),
    )

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: TestStatus) -> TestStatus:
        if v == TestStatus.IDLE:
            raise ValueError("运行结果状态不能为 IDLE")
        return v

class TestRunInfo(CamelModel):
    """运行历史记录"""
    id: str
    test_case_id: str
    status: TestStatus
    events: List[RunEvent] = Field(default_factory=list)
    error: Optional[str] = None
    test_config: Optional[TestCaseDefinition] = None
    created_at: datetime
