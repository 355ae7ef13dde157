from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from src.api.models.test_case import TestCaseDefinition
from src.api.services.auth import AuthPayload, require_auth
from src.api.services.runner import RunnerService

router = APIRouter(prefix="/api/v1", tags=["run"])

@router.post("/run-test")
async def run_test(
    definition: TestCaseDefinition,
    auth_payload: AuthPayload = Depends(require_auth)
) -> StreamingResponse:
    """运行用例，以SSE格式返回执行器的事件流"""
    return StreamingResponse(
        RunnerService.stream_run(definition),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )
