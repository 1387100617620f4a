from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def create_db_engine(db_path) -> Engine:
    """创建 SQLite 引擎；由入口负责生命周期，不做模块级全局连接。"""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    # check_same_thread=False allows sharing connection across threads (HTTP 线程 + 合成线程)
    # SQLite supports one writer at a time; timeout waits for the write lock instead of failing.
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    # expire_on_commit=False: 返回给调用方的对象在 session 关闭后仍可读取
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Initialize database tables."""
    # models 注册到 Base.metadata 后才能建表
    import db.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
