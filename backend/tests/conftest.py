"""
MiVilla 测试配置

统一管理测试数据库初始化，确保所有模型都被导入和注册。
"""
import os

# 测试中不启动后台清理线程
os.environ.setdefault("MV_GRANT_SWEEP_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mivilla.database.config import Base, get_db
from mivilla.database import access_token_models  # noqa: F401 - 注册二维码模型
from mivilla.database import audit_log_models  # noqa: F401 - 注册审计日志模型
from mivilla.database import grant_models  # noqa: F401 - 注册授权模型
from mivilla.api.deps.auth_deps import get_current_principal
from mivilla.main import app
from mivilla.models.access_schemas import Principal, Role, Subject
from mivilla.services.token_store import InMemoryTokenStore, SqlTokenStore

# 使用文件数据库进行测试（内存数据库有连接隔离问题）
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False, "timeout": 30})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """覆盖数据库依赖"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


@pytest.fixture
def db():
    """提供数据库会话"""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# ========== 测试用操作人 ==========

ADMIN_T1 = Principal(user_id="admin-1", tenant_id="t1", name="Administración", role=Role.ADMIN)
RECEPTION_T1 = Principal(user_id="guard-1", tenant_id="t1", name="Portería", role=Role.RECEPTION)
RESIDENT_T1 = Principal(user_id="res-101", tenant_id="t1", name="Ana Pérez", role=Role.RESIDENT, unit="101")
ADMIN_T2 = Principal(user_id="admin-2", tenant_id="t2", name="Otra Admin", role=Role.ADMIN)

UNIT_101 = Subject(id="res-101", tenant_id="t1", name="Ana Pérez", unit="101")


def override_principal(principal: Principal):
    """覆盖认证依赖，返回指定操作人"""
    app.dependency_overrides[get_current_principal] = lambda: principal


# 默认覆盖（作为兜底）
app.dependency_overrides[get_db] = override_get_db
override_principal(ADMIN_T1)


@pytest.fixture(autouse=True)
def apply_overrides():
    """每个测试自动应用依赖覆盖，并在结束后清理"""
    old_overrides = app.dependency_overrides.copy()

    app.dependency_overrides[get_db] = override_get_db
    override_principal(ADMIN_T1)

    yield

    app.dependency_overrides = old_overrides


@pytest.fixture(autouse=True)
def setup_database():
    """每个测试前创建所有表，测试后清理"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """提供测试客户端"""
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def as_principal():
    """切换当前请求的操作人"""
    return override_principal


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """两种存储实现各跑一遍"""
    if request.param == "memory":
        return InMemoryTokenStore()
    return SqlTokenStore(TestingSessionLocal)
