from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger
import time
from typing import Any, Callable
from starlette.responses import Response
import json

# 请求体中需要脱敏的字段(小写比较)
SENSITIVE_KEYS = {"password", "token", "authorization", "secret", "api_key", "apikey"}
REDACTED = "[REDACTED]"

def redact(value: Any) -> Any:
    """递归脱敏 dict/list 中的敏感字段"""
    if isinstance(value, dict):
        return {
            k: (REDACTED if str(k).lower() in SENSITIVE_KEYS and v else redact(v))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact(item) for item in value]
    return value

class LoggerMiddleware(BaseHTTPMiddleware):
    """日志中间件,用于记录请求和响应信息"""

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        # 记录请求开始时间
        start_time = time.time()

        # 记录请求信息
        logger.info(f"Request started: {request.method} {request.url.path}")

        # 获取请求体
        try:
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        body_json = json.loads(body.decode('utf-8'))
                        logger.debug(f"Request body (JSON): {json.dumps(redact(body_json), ensure_ascii=False)}")
                    except (UnicodeDecodeError, json.JSONDecodeError):
                        logger.warning("Failed to parse JSON request body")
            elif "multipart/form-data" in content_type:
                logger.debug("Request contains form data (not logged)")
            elif content_type:
                logger.debug(f"Request body type: {content_type} (not logged)")
        except Exception as e:
            logger.warning(f"Failed to process request body: {str(e)}")

        # 处理请求
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(f"Request failed: {str(exc)}")
            raise

        # 计算处理时间(流式响应只统计到响应头返回)
        process_time = time.time() - start_time

        # 记录响应信息
        logger.info(
            f"Request completed: {request.method} {request.url.path} "
            f"- Status: {response.status_code} "
            f"- Process time: {process_time:.3f}s"
        )

        return response
