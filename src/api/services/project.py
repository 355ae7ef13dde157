from typing import List, Optional, Tuple
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger
from src.db.models import Project, TestCase

class ProjectService:
    """项目服务"""

    @classmethod
    async def get_project_by_id(
        cls,
        project_id: str,
        db: AsyncSession
    ) -> Optional[Project]:
        """根据ID获取项目"""
        result = await db.execute(
            select(Project).where(Project.id == project_id)
        )
        return result.scalar_one_or_none()

    @classmethod
    async def get_owned_project(
        cls,
        project_id: str,
        user_id: str,
        db: AsyncSession
    ) -> Project:
        """获取属于指定用户的项目

        Raises:
            ValueError: 项目不存在
            PermissionError: 项目不属于该用户
        """
        project = await cls.get_project_by_id(project_id, db)
        if not project:
            raise ValueError("项目不存在")
        if project.user_id != user_id:
            raise PermissionError("无权访问该项目")
        return project

    @classmethod
    async def create_project(
        cls,
        name: str,
        user_id: str,
        db: AsyncSession
    ) -> Project:
        """创建项目"""
        project = Project(name=name, user_id=user_id)
        db.add(project)
        await db.commit()
        await db.refresh(project)
        logger.info(f"项目创建成功: {project.id}")
        return project

    @classmethod
    async def list_projects(
        cls,
        user_id: str,
        db: AsyncSession
    ) -> List[Tuple[Project, int]]:
        """获取用户的项目列表及每个项目的用例数量

        Returns:
            List[Tuple[Project, int]]: (项目, 用例数) 列表，按更新时间倒序
        """
        case_count = (
            select(func.count(TestCase.id))
            .where(TestCase.project_id == Project.id)
            .correlate(Project)
            .scalar_subquery()
        )
        result = await db.execute(
            select(Project, case_count)
            .where(Project.user_id == user_id)
            .order_by(Project.updated_at.desc())
        )
        return [(project, count or 0) for project, count in result.all()]

    @classmethod
    async def count_test_cases(cls, project_id: str, db: AsyncSession) -> int:
        """统计项目下的用例数"""
        total = await db.scalar(
            select(func.count(TestCase.id)).where(TestCase.project_id == project_id)
        )
        return total or 0
