"""日志模块（文件 + 控制台）

目标：
- 所有业务代码统一调用标准 logging（`logging.getLogger(__name__)`），避免 print
- 文件日志自动轮转，便于服务端排障

注意：
- 本模块会 import config，请避免在 config import logger（防止循环依赖）。
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import config


class LoggerManager:
    """日志管理器（进程内只初始化一次）"""
    _instance = None

    @classmethod
    def setup_logger(cls, log_dir: Path | None = None):
        """配置全局 Logger"""
        if cls._instance:
            return cls._instance

        root_logger = logging.getLogger()
        level_name = getattr(config, "LOG_LEVEL", "INFO")
        level = getattr(logging, str(level_name).upper(), logging.INFO)
        root_logger.setLevel(level)
        root_logger.handlers = []  # 清除旧 handler，防止重复输出

        formatter = logging.Formatter(config.LOG_FORMAT, datefmt=config.LOG_DATETIME_FORMAT)

        # 文件 Handler (按文件大小轮转，最大 5MB，保留 5 个备份)
        log_dir = Path(log_dir or config.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / "voicepaper.log", maxBytes=5*1024*1024, backupCount=5, encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        # requests/urllib3 的连接日志过于啰嗦
        logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))

        cls._instance = root_logger
        return root_logger

    @classmethod
    def reset(cls):
        """关闭并移除已安装的 handler（测试或重新配置时使用）"""
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()
        cls._instance = None


class AppLogger:
    """入口脚本使用的日志门面"""

    def __init__(self, name: str = "voicepaper"):
        self.logger = logging.getLogger(name)

    def info(self, msg): self.logger.info(msg)
    def warning(self, msg): self.logger.warning(msg)
    def error(self, msg): self.logger.error(msg)
    def debug(self, msg): self.logger.debug(msg)

    def success(self, msg): self.logger.info(f"✅ {msg}")
    def highlight(self, msg): self.logger.info(f"*** {msg} ***")


logger = AppLogger()
