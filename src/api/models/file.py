from datetime import datetime
from .base import CamelModel

class TestCaseFileInfo(CamelModel):
    """用例附件信息模型"""
    id: str
    test_case_id: str
    filename: str
    stored_name: str
    mime_type: str
    size: int
    created_at: datetime
