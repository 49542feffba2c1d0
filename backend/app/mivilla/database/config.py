"""MiVilla - Database Configuration

数据库连接配置
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from mivilla.core.config import settings

# 创建 Base 类
Base = declarative_base()

DATABASE_URL = settings.DB_URL

# 创建引擎
engine = create_engine(
    DATABASE_URL,
    echo=False,
    # SQLite 特殊配置：多个接待台线程共享同一数据库文件
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
)

# 创建 Session 工厂
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """获取数据库会话（依赖注入）"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """创建所有表"""
    from mivilla.database import access_token_models, audit_log_models, grant_models  # noqa: F401

    Base.metadata.create_all(bind=engine)
