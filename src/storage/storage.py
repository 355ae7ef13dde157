import os
import re
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO
from src.config.settings import settings
from src.logger.logger import logger
from src.utils.common import ensure_dir, remove_dir

# 用例ID只允许uuid风格字符，存储文件名不允许包含路径分隔符
_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.-]{1,255}$")

class StoragePathError(ValueError):
    """非法的存储路径"""

def _upload_root() -> Path:
    return Path(settings.storage.STORAGE_UPLOAD_DIR).resolve()

def get_upload_path(test_case_id: str) -> Path:
    """获取测试用例的上传目录

    Args:
        test_case_id: 测试用例ID

    Returns:
        Path: 目录路径(不保证存在)
    """
    if not _SAFE_ID.match(test_case_id or ""):
        raise StoragePathError(f"非法的测试用例ID: {test_case_id!r}")
    return _upload_root() / test_case_id

def get_file_path(test_case_id: str, stored_name: str) -> Path:
    """获取附件在磁盘上的完整路径"""
    if not _SAFE_NAME.match(stored_name or "") or stored_name in (".", ".."):
        raise StoragePathError(f"非法的存储文件名: {stored_name!r}")
    path = (get_upload_path(test_case_id) / stored_name).resolve()
    if _upload_root() not in path.parents:
        raise StoragePathError(f"路径越界: {path}")
    return path

def generate_stored_name(stored_name: str = "", filename: str = "") -> str:
    """生成新的存储文件名，保留原扩展名

    优先使用已存储文件名的扩展名，其次使用原始文件名的扩展名。
    """
    ext = os.path.splitext(stored_name)[1] or os.path.splitext(filename)[1] or ""
    # 扩展名也会成为磁盘文件名的一部分
    if ext and not _SAFE_NAME.match(ext):
        ext = ""
    return f"{uuid.uuid4()}{ext}"

def save_file(test_case_id: str, stored_name: str, source: BinaryIO) -> int:
    """保存上传的文件内容

    Returns:
        int: 写入的字节数
    """
    ensure_dir(get_upload_path(test_case_id))
    dest = get_file_path(test_case_id, stored_name)
    with open(dest, "wb") as f:
        shutil.copyfileobj(source, f)
    size = dest.stat().st_size
    logger.debug(f"文件已保存: {dest} ({size} bytes)")
    return size

def copy_file(src: Path, dest: Path) -> None:
    """复制文件内容，失败时抛出OSError"""
    shutil.copyfile(src, dest)

def delete_file(test_case_id: str, stored_name: str) -> bool:
    """删除单个附件，文件不存在时返回False"""
    path = get_file_path(test_case_id, stored_name)
    if not path.exists():
        return False
    path.unlink()
    return True

def delete_upload_dir(test_case_id: str) -> bool:
    """删除测试用例的整个上传目录"""
    removed = remove_dir(get_upload_path(test_case_id))
    if removed:
        logger.info(f"已删除上传目录: {test_case_id}")
    return removed
