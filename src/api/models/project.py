from datetime import datetime
from pydantic import Field
from .base import CamelModel

class ProjectCreate(CamelModel):
    """项目创建模型"""
    name: str = Field(..., min_length=1, max_length=255)

class ProjectInfo(CamelModel):
    """项目信息模型"""
    id: str
    name: str
    user_id: str
    created_at: datetime
    updated_at: datetime
    test_case_count: int = 0
