"""程序入口（启动/异常兜底）

职责：
- 初始化日志、Sentry，打印启动信息（脱敏）
- 创建数据库引擎与仓储，并显式注入给 service / HTTP 层
- 导入旧版 manifest（可选）
- 启动 HTTP 服务，Ctrl+C 后停止服务并等待后台合成结束
"""
import argparse
import sys
import threading
import traceback

import config
from db.article_repository import ArticleRepository
from db.core import create_db_engine, create_session_factory, init_db
from services.legacy_seed import seed_legacy_manifest
from services.narration_service import NarrationService
from tts import MinimaxT2AClient
from utils.logger import LoggerManager, logger
from utils.telemetry import init_sentry
from web.server import VoicePaperServer
from workers.task_queue import TaskManager


def global_exception_handler(exc_type, exc_value, exc_traceback):
    """
    全局异常捕获钩子
    当程序发生未捕获异常时记录日志，防止静默崩溃。
    """
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    error_msg = "".join(traceback.format_exception(exc_type, exc_value, exc_traceback))
    logger.error(f"未捕获的异常 (Uncaught Exception):\n{error_msg}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="voicepaper", description="VoicePaper 朗读服务")
    parser.add_argument("--host", default=None, help="监听地址（默认读取 SERVER_HOST）")
    parser.add_argument("--port", type=int, default=None, help="监听端口（默认读取 SERVER_PORT）")
    parser.add_argument("--no-seed", action="store_true", help="跳过旧版 manifest 导入")
    return parser


def main(argv=None) -> int:
    """主程序入口"""
    args = build_parser().parse_args(argv)

    LoggerManager.setup_logger()
    sys.excepthook = global_exception_handler
    logger.info("正在启动 VoicePaper 朗读服务...")

    init_sentry()
    logger.info(f"启动信息：{config.get_startup_info()}")

    missing = config.validate_required_config()
    if missing:
        logger.warning(f"检测到必填配置缺失：{missing}（合成任务会失败）")

    # 1. 数据库：生命周期由入口持有
    engine = create_db_engine(config.DB_PATH)
    init_db(engine)
    repository = ArticleRepository(create_session_factory(engine))
    logger.success(f"Database connected and migrated: {config.DB_PATH}")

    # 2. 合成客户端 + 后台任务池 + 核心服务
    task_manager = TaskManager(max_workers=config.WORKER_MAX_THREADS)
    service = NarrationService(
        repository=repository,
        client=MinimaxT2AClient.from_config(),
        task_manager=task_manager,
        audio_dir=config.AUDIO_DIR,
        audio_ext=config.MINIMAX_FORMAT,
    )

    # 3. 旧数据导入
    if config.LEGACY_MANIFEST_PATH and not args.no_seed:
        seed_legacy_manifest(service, config.LEGACY_MANIFEST_PATH)

    # 4. HTTP 服务
    server = VoicePaperServer(
        service=service,
        repository=repository,
        audio_dir=config.AUDIO_DIR,
        host=args.host or config.SERVER_HOST,
        port=args.port if args.port is not None else config.SERVER_PORT,
        cors_origin=config.CORS_ALLOW_ORIGIN,
    )
    try:
        server.start()
    except OSError as e:
        logger.error(f"Server failed to start: {e}")
        task_manager.shutdown(wait=False)
        engine.dispose()
        return 1

    stop_event = threading.Event()
    try:
        while not stop_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("收到停止信号，正在退出...")
    finally:
        server.stop()
        task_manager.shutdown(wait=True)
        engine.dispose()
    return 0


if __name__ == '__main__':
    sys.exit(main())
