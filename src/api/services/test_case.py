import copy
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from loguru import logger
from src.api.models.test_case import TestCaseCreate, TestCaseStatus, TestCaseUpdate
from src.api.services.file import FileService
from src.db.models import TestCase
from src.storage import storage

class TestCaseService:
    """测试用例服务"""

    @classmethod
    async def get_test_case_by_id(
        cls,
        test_case_id: str,
        db: AsyncSession
    ) -> Optional[TestCase]:
        """根据ID获取用例(包含所属项目)"""
        result = await db.execute(
            select(TestCase)
            .options(selectinload(TestCase.project))
            .where(TestCase.id == test_case_id)
        )
        return result.scalar_one_or_none()

    @classmethod
    async def get_owned_test_case(
        cls,
        test_case_id: str,
        user_id: str,
        db: AsyncSession
    ) -> TestCase:
        """获取属于指定用户的用例

        Raises:
            ValueError: 用例不存在
            PermissionError: 用例所属项目不属于该用户
        """
        test_case = await cls.get_test_case_by_id(test_case_id, db)
        if not test_case:
            raise ValueError("用例不存在")
        if test_case.project.user_id != user_id:
            raise PermissionError("无权访问该用例")
        return test_case

    @classmethod
    async def create_test_case(
        cls,
        project_id: str,
        data: TestCaseCreate,
        db: AsyncSession
    ) -> TestCase:
        """在项目下创建用例"""
        payload = data.model_dump(mode="json", exclude_none=True)
        test_case = TestCase(project_id=project_id, status=TestCaseStatus.DRAFT.value, **payload)
        db.add(test_case)
        await db.commit()
        await db.refresh(test_case)

        logger.info(f"用例创建成功: {test_case.id} ({test_case.name}, {data.mode.value})")
        return test_case

    @classmethod
    async def update_test_case(
        cls,
        test_case: TestCase,
        data: TestCaseUpdate,
        db: AsyncSession
    ) -> TestCase:
        """更新用例，只修改传入的字段"""
        changes = data.model_dump(mode="json", exclude_unset=True)
        for field, value in changes.items():
            setattr(test_case, field, value)

        await db.commit()
        await db.refresh(test_case)

        logger.info(f"用例信息更新成功: {test_case.id}, 字段: {sorted(changes)}")
        return test_case

    @classmethod
    async def delete_test_case(
        cls,
        test_case: TestCase,
        db: AsyncSession
    ) -> bool:
        """删除用例及其附件目录"""
        test_case_id = test_case.id
        await db.delete(test_case)
        await db.commit()
        storage.delete_upload_dir(test_case_id)

        logger.info(f"用例删除成功: {test_case_id}")
        return True

    @classmethod
    async def clone_test_case(
        cls,
        source: TestCase,
        db: AsyncSession
    ) -> TestCase:
        """克隆用例及其附件

        新用例名称追加 " (Copy)"，状态重置为 DRAFT，其余字段与原用例相同。
        原用例不会被修改；附件按创建时间倒序逐个复制，单个失败不影响整体。

        Args:
            source: 原用例
            db: 数据库会话

        Returns:
            TestCase: 新建的用例
        """
        files = await FileService.list_files(source.id, db)

        clone = TestCase(
            name=f"{source.name} (Copy)",
            url=source.url,
            prompt=source.prompt,
            steps=copy.deepcopy(source.steps),
            browser_config=copy.deepcopy(source.browser_config),
            username=source.username,
            password=source.password,
            project_id=source.project_id,
            display_id=source.display_id,
            status=TestCaseStatus.DRAFT.value,
        )
        db.add(clone)
        await db.commit()
        await db.refresh(clone)
        logger.info(f"用例克隆成功: {source.id} -> {clone.id}")

        await FileService.clone_files(source.id, clone.id, files, db)
        return clone
