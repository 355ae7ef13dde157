import os
import sys
import tempfile
from pathlib import Path

# 添加项目根目录到Python路径
project_root = str(Path(__file__).parent.parent)
sys.path.insert(0, project_root)

# 设置测试环境变量(必须在导入项目模块之前)
_test_root = tempfile.mkdtemp(prefix="testboard-tests-")
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"  # 使用内存数据库
os.environ["LOG_FILE"] = os.path.join(_test_root, "logs", "test.log")
os.environ["STORAGE_UPLOAD_DIR"] = os.path.join(_test_root, "uploads")
os.environ["AUTH_SECRET"] = "test-secret"
os.environ["AUTH_AUDIENCE"] = ""

# 现在可以导入项目模块
import httpx
import jwt
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from src.config.settings import settings
from src.db.models import Base, User, Project, TestCase
from src.db.session import get_db
from src.main import app

API = "/api/v1"

def make_token(**claims) -> str:
    """签发测试用的访问令牌"""
    return jwt.encode(claims, settings.auth.AUTH_SECRET, algorithm=settings.auth.AUTH_ALGORITHM)

def auth_headers(**claims) -> dict:
    return {"Authorization": f"Bearer {make_token(**claims)}"}

@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch) -> Path:
    """每个测试使用独立的上传目录"""
    path = tmp_path / "uploads"
    path.mkdir()
    monkeypatch.setattr(settings.storage, "STORAGE_UPLOAD_DIR", str(path))
    return path

@pytest_asyncio.fixture
async def session_factory():
    """创建测试数据库并返回会话工厂"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()

@pytest_asyncio.fixture
async def db_session(session_factory):
    """创建测试数据库会话"""
    async with session_factory() as session:
        yield session
        await session.rollback()

@pytest_asyncio.fixture
async def client(session_factory):
    """指向测试数据库的API客户端"""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()

@pytest_asyncio.fixture
async def owner(db_session) -> User:
    user = User(auth_id="auth|owner", email="owner@example.com", name="Owner")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user

@pytest_asyncio.fixture
async def stranger(db_session) -> User:
    user = User(auth_id="auth|stranger", email="stranger@example.com", name="Stranger")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user

@pytest.fixture
def owner_headers(owner) -> dict:
    return auth_headers(sub=owner.auth_id)

@pytest_asyncio.fixture
async def project(db_session, owner) -> Project:
    project = Project(name="Shop", user_id=owner.id)
    db_session.add(project)
    await db_session.commit()
    await db_session.refresh(project)
    return project

@pytest_asyncio.fixture
async def test_case(db_session, project) -> TestCase:
    case = TestCase(
        name="Login",
        url="https://shop.example.com",
        prompt="log in as the demo user",
        username="demo",
        password="secret",
        display_id="TC-1",
        status="PASS",
        project_id=project.id,
    )
    db_session.add(case)
    await db_session.commit()
    await db_session.refresh(case)
    return case
