"""
Conftest - pytest configuration and fixtures
"""
import io
import os
import sys
import tarfile
import tempfile
import pytest
from pathlib import Path


# 确保 tests 在任意工作目录下执行时，都能导入 src/ 下的模块
SRC_DIR = (Path(__file__).resolve().parent.parent / "src").resolve()
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


# 让单元测试不受本地 .env 影响（环境变量优先于 .env），数据目录放到临时目录
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="voicepaper-test-")
os.environ["DATA_DIR"] = _TEST_DATA_DIR
os.environ["MINIMAX_API_KEY"] = "test-key"
os.environ["MINIMAX_POLL_INTERVAL_SEC"] = "0"
os.environ["LEGACY_MANIFEST_PATH"] = ""
os.environ["SENTRY_DSN"] = ""


def make_tar(entries: dict) -> bytes:
    """构造内存 tar 包：{文件名: bytes}"""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for name, data in entries.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


@pytest.fixture
def repository(tmp_path):
    """临时 SQLite 上的 ArticleRepository"""
    from db.article_repository import ArticleRepository
    from db.core import create_db_engine, create_session_factory, init_db

    engine = create_db_engine(tmp_path / "test.db")
    init_db(engine)
    yield ArticleRepository(create_session_factory(engine))
    engine.dispose()


@pytest.fixture
def task_manager():
    from workers.task_queue import TaskManager

    manager = TaskManager(max_workers=2)
    yield manager
    manager.shutdown(wait=True)


@pytest.fixture
def audio_dir(tmp_path):
    path = tmp_path / "audio"
    path.mkdir()
    return path
