from typing import Optional, Any
from sqlalchemy import String, Text, ForeignKey, JSON, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship
from .base import Base

class User(Base):
    """用户模型(身份由外部认证服务签发)"""

    auth_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)  # 认证服务中的subject
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    projects: Mapped[list["Project"]] = relationship(back_populates="user", cascade="all, delete-orphan")

class Project(Base):
    """项目模型"""

    name: Mapped[str] = mapped_column(String(255))
    user_id: Mapped[str] = mapped_column(ForeignKey("user.id"), index=True)

    user: Mapped["User"] = relationship(back_populates="projects")
    test_cases: Mapped[list["TestCase"]] = relationship(back_populates="project", cascade="all, delete-orphan")

class TestCase(Base):
    """测试用例模型

    steps/browser_config 非空时为 builder 模式，否则为 simple 模式；模式不单独存储。
    """

    name: Mapped[str] = mapped_column(String(255))
    url: Mapped[str] = mapped_column(String(2048), default="")
    prompt: Mapped[str] = mapped_column(Text, default="")
    steps: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    browser_config: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    display_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="DRAFT")  # DRAFT/RUNNING/PASS/FAIL/CANCELLED

    # 关联关系
    project_id: Mapped[str] = mapped_column(ForeignKey("project.id"), index=True)
    project: Mapped["Project"] = relationship(back_populates="test_cases")
    files: Mapped[list["TestCaseFile"]] = relationship(back_populates="test_case", cascade="all, delete-orphan")
    runs: Mapped[list["TestRun"]] = relationship(back_populates="test_case", cascade="all, delete-orphan")

class TestCaseFile(Base):
    """测试用例附件"""

    test_case_id: Mapped[str] = mapped_column(ForeignKey("testcase.id"), index=True)
    filename: Mapped[str] = mapped_column(String(255))  # 原始文件名
    stored_name: Mapped[str] = mapped_column(String(255))  # 磁盘上的文件名
    mime_type: Mapped[str] = mapped_column(String(255), default="application/octet-stream")
    size: Mapped[int] = mapped_column(Integer, default=0)

    test_case: Mapped["TestCase"] = relationship(back_populates="files")

class TestRun(Base):
    """测试运行记录，写入后不再修改"""

    test_case_id: Mapped[str] = mapped_column(ForeignKey("testcase.id"), index=True)
    status: Mapped[str] = mapped_column(String(20))
    result: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON, nullable=True)  # 事件列表
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    test_config: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)  # 实际运行的用例配置

    test_case: Mapped["TestCase"] = relationship(back_populates="runs")
