import mimetypes
from typing import List, Optional
from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger
from src.config.settings import settings
from src.db.models import TestCaseFile
from src.storage import storage
from src.utils.common import ensure_dir, get_file_extension, format_file_size

class FileService:
    """用例附件服务"""

    @classmethod
    async def save_upload_file(
        cls,
        test_case_id: str,
        file: UploadFile,
        db: AsyncSession
    ) -> TestCaseFile:
        """保存上传的附件

        Args:
            test_case_id: 用例ID
            file: 上传的文件
            db: 数据库会话

        Returns:
            TestCaseFile: 附件记录

        Raises:
            ValueError: 文件类型或大小不合法
        """
        filename = file.filename or "upload"
        file_ext = get_file_extension(filename)
        if file_ext not in settings.storage.STORAGE_ALLOWED_EXTENSIONS:
            raise ValueError(f"不支持的文件类型: {file_ext or '无扩展名'}")

        stored_name = storage.generate_stored_name(filename=filename)
        size = storage.save_file(test_case_id, stored_name, file.file)

        max_size = settings.storage.STORAGE_MAX_FILE_SIZE
        if size > max_size:
            storage.delete_file(test_case_id, stored_name)
            raise ValueError(f"文件过大: {format_file_size(size)}，最大允许 {format_file_size(max_size)}")

        mime_type = file.content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        db_file = TestCaseFile(
            test_case_id=test_case_id,
            filename=filename,
            stored_name=stored_name,
            mime_type=mime_type,
            size=size
        )
        db.add(db_file)
        await db.commit()
        await db.refresh(db_file)

        logger.info(f"附件上传成功: {test_case_id}/{stored_name} ({filename})")
        return db_file

    @classmethod
    async def list_files(
        cls,
        test_case_id: str,
        db: AsyncSession
    ) -> List[TestCaseFile]:
        """获取用例的附件列表(按创建时间倒序)"""
        result = await db.execute(
            select(TestCaseFile)
            .where(TestCaseFile.test_case_id == test_case_id)
            .order_by(TestCaseFile.created_at.desc())
        )
        return list(result.scalars().all())

    @classmethod
    async def get_file(
        cls,
        test_case_id: str,
        file_id: str,
        db: AsyncSession
    ) -> Optional[TestCaseFile]:
        """获取单个附件记录"""
        result = await db.execute(
            select(TestCaseFile).where(
                TestCaseFile.id == file_id,
                TestCaseFile.test_case_id == test_case_id
            )
        )
        return result.scalar_one_or_none()

    @classmethod
    async def delete_file(
        cls,
        test_case_id: str,
        file_id: str,
        db: AsyncSession
    ) -> bool:
        """删除附件(记录和磁盘文件)"""
        db_file = await cls.get_file(test_case_id, file_id, db)
        if not db_file:
            raise ValueError("附件不存在")

        if not storage.delete_file(test_case_id, db_file.stored_name):
            logger.warning(f"磁盘文件不存在，仅删除记录: {test_case_id}/{db_file.stored_name}")

        await db.delete(db_file)
        await db.commit()

        logger.info(f"附件删除成功: {file_id}")
        return True

    @classmethod
    async def clone_files(
        cls,
        source_test_case_id: str,
        target_test_case_id: str,
        files: List[TestCaseFile],
        db: AsyncSession
    ) -> List[TestCaseFile]:
        """把附件逐个复制到另一个用例

        单个文件复制失败只记录日志并跳过，不影响其余文件。

        Returns:
            List[TestCaseFile]: 成功复制的附件记录
        """
        if not files:
            return []

        ensure_dir(storage.get_upload_path(target_test_case_id))

        cloned = []
        for file in files:
            new_stored_name = storage.generate_stored_name(file.stored_name, file.filename)
            try:
                src = storage.get_file_path(source_test_case_id, file.stored_name)
                dest = storage.get_file_path(target_test_case_id, new_stored_name)
                storage.copy_file(src, dest)
            except (OSError, storage.StoragePathError) as e:
                logger.warning(
                    f"克隆附件失败，已跳过: test_case={source_test_case_id}, "
                    f"file={file.id}, stored_name={file.stored_name}, error={str(e)}"
                )
                continue

            db_file = TestCaseFile(
                test_case_id=target_test_case_id,
                filename=file.filename,
                stored_name=new_stored_name,
                mime_type=file.mime_type,
                size=file.size
            )
            db.add(db_file)
            await db.commit()
            await db.refresh(db_file)
            cloned.append(db_file)

        logger.info(f"附件克隆完成: {len(cloned)}/{len(files)} -> {target_test_case_id}")
        return cloned
