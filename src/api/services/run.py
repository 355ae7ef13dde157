from typing import List
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger
from src.api.models.run import RunOutcome, TestRunInfo, parse_run_event
from src.db.models import TestCase, TestRun

class RunService:
    """运行历史服务"""

    @classmethod
    async def record_run(
        cls,
        test_case: TestCase,
        outcome: RunOutcome,
        db: AsyncSession
    ) -> TestRun:
        """保存一次运行结果，并把用例状态更新为本次运行的状态"""
        run = TestRun(
            test_case_id=test_case.id,
            status=outcome.status.value,
            result=[event.model_dump(by_alias=True, mode="json", exclude_none=True) for event in outcome.events],
            error=outcome.error,
            test_config=outcome.test_config.to_payload(),
        )
        db.add(run)
        test_case.status = outcome.status.value
        await db.commit()
        await db.refresh(run)

        logger.info(f"运行记录已保存: {test_case.id} -> {run.id} [{run.status}], 事件数: {len(run.result or [])}")
        return run

    @classmethod
    async def list_runs(
        cls,
        test_case_id: str,
        db: AsyncSession,
        limit: int = 50
    ) -> List[TestRun]:
        """获取用例的运行历史(最新在前)"""
        result = await db.execute(
            select(TestRun)
            .where(TestRun.test_case_id == test_case_id)
            .order_by(TestRun.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    def to_info(run: TestRun) -> TestRunInfo:
        """转换为响应模型，无法解析的历史事件会被丢弃"""
        events = []
        for raw in run.result or []:
            try:
                events.append(parse_run_event(raw))
            except ValidationError:
                logger.warning(f"运行记录中存在无法解析的事件: {run.id}")
        return TestRunInfo(
            id=run.id,
            test_case_id=run.test_case_id,
            status=run.status,
            events=events,
            error=run.error,
            test_config=run.test_config,
            created_at=run.created_at,
        )
