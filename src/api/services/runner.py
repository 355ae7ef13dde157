import json
from typing import AsyncIterator, Optional
import httpx
from loguru import logger
from src.api.models.test_case import TestCaseDefinition
from src.config.settings import settings

def sse_event(payload: dict) -> str:
    """格式化一条SSE记录"""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"

def sse_failure(error: str) -> str:
    """格式化一条失败状态记录"""
    return sse_event({"type": "status", "status": "FAIL", "error": error})

class RunnerService:
    """浏览器自动化执行器代理"""

    # 测试时可替换为 httpx.MockTransport
    transport: Optional[httpx.AsyncBaseTransport] = None

    @classmethod
    async def stream_run(cls, definition: TestCaseDefinition) -> AsyncIterator[str]:
        """把用例定义转发给执行器，并原样转发其事件流

        执行器不可用或返回错误状态时，输出一条 FAIL 状态记录。
        客户端断开时生成器被关闭，上游请求随之中断。
        """
        timeout = httpx.Timeout(
            settings.runner.RUNNER_TIMEOUT,
            connect=settings.runner.RUNNER_CONNECT_TIMEOUT
        )
        streamed = False
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=cls.transport) as client:
                async with client.stream(
                    "POST",
                    settings.runner.RUNNER_URL,
                    json=definition.to_payload(),
                    headers={"Accept": "text/event-stream"}
                ) as response:
                    if response.status_code >= 400:
                        logger.error(f"执行器返回错误状态: {response.status_code}")
                        yield sse_failure(f"Runner responded with status {response.status_code}")
                        return

                    logger.info(f"开始转发执行器事件流: {definition.name or '(unnamed)'}")
                    async for chunk in response.aiter_text():
                        streamed = True
                        yield chunk
        except httpx.HTTPError as e:
            logger.error(f"执行器请求失败: {str(e)}")
            # 前面可能留有半条记录，先补一个分隔符
            prefix = "\n\n" if streamed else ""
            yield prefix + sse_failure(f"Runner request failed: {str(e) or type(e).__name__}")
