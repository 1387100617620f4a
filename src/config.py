# config.py - Pydantic-based settings
"""
VoicePaper 朗读服务 - 全局配置
使用 pydantic-settings 实现强类型验证、默认值管理，并从环境变量 / .env 自动加载。
"""
import os
import sys
from pathlib import Path
from typing import Literal, Optional
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# ===================================================
# 核心路径解析逻辑
# ===================================================
BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"


def _load_app_version() -> str:
    """优先读取本地版本文件"""
    try:
        ver_file = BASE_DIR / "APP_VERSION.txt"
        if ver_file.exists():
            text = ver_file.read_text(encoding="utf-8").strip()
            if text:
                return text
    except OSError:
        pass
    return "0.0.0"


# ===================================================
# 配置模型定义
# ===================================================
class AppSettings(BaseSettings):
    """
    应用程序全局配置模型
    所有字段都有类型验证，并自动从环境变量或 .env 文件加载。
    """

    # --- 基础元信息 ---
    APP_VERSION: str = Field(default_factory=_load_app_version, description="应用版本号")
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("INFO", description="日志等级")
    SENTRY_DSN: Optional[str] = Field("", description="Sentry 错误监控 DSN (空字符串禁用)")

    # --- 日志格式 (兼容 logger.py) ---
    LOG_FORMAT: str = Field(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        description="日志格式"
    )
    LOG_DATETIME_FORMAT: str = Field(
        "%Y-%m-%d %H:%M:%S",
        description="日志时间格式"
    )

    # --- 目录路径 (类型自动转 Path) ---
    BASE_DIR: Path = Field(default=BASE_DIR, description="程序根目录")
    DATA_DIR: Path = Field(default=DATA_DIR, description="数据存储目录")

    # 下面这些路径在 model_post_init 中按 DATA_DIR 补默认值
    AUDIO_DIR: Optional[Path] = Field(None, description="音频文件目录")
    LOG_DIR: Optional[Path] = Field(None, description="日志目录")
    DB_PATH: Optional[Path] = Field(None, description="SQLite 数据库文件")
    LEGACY_MANIFEST_PATH: str = Field("", description="旧版 manifest.json 路径 (为空则不导入)")

    # --- HTTP 服务 ---
    SERVER_HOST: str = Field("0.0.0.0", description="监听地址")
    SERVER_PORT: int = Field(8080, description="监听端口")
    CORS_ALLOW_ORIGIN: str = Field("*", description="CORS 允许的来源")
    WORKER_MAX_THREADS: int = Field(4, ge=1, description="后台合成线程数")

    # --- MiniMax 异步语音合成 ---
    MINIMAX_API_KEY: SecretStr = Field("", description="MiniMax API Key (Bearer)")
    MINIMAX_BASE_URL: str = Field("https://api.minimaxi.com", description="MiniMax 接口地址")
    MINIMAX_MODEL: str = Field("speech-02-hd", description="合成模型")
    MINIMAX_VOICE_ID: str = Field("Chinese (Mandarin)_Warm_Bestie", description="音色 ID")
    MINIMAX_SPEED: float = Field(0.8, description="语速")
    MINIMAX_VOL: float = Field(1.0, description="音量")
    MINIMAX_PITCH: int = Field(0, description="语调")
    MINIMAX_SAMPLE_RATE: int = Field(32000, description="采样率")
    MINIMAX_BITRATE: int = Field(128000, description="码率")
    MINIMAX_FORMAT: str = Field("mp3", description="输出格式")
    MINIMAX_CHANNEL: int = Field(1, description="声道数")

    MINIMAX_REQUEST_TIMEOUT_SEC: float = Field(30.0, description="单次接口请求超时 (秒)")
    MINIMAX_DOWNLOAD_TIMEOUT_SEC: float = Field(120.0, description="音频包下载超时 (秒)")
    MINIMAX_POLL_INTERVAL_SEC: float = Field(2.0, ge=0, description="轮询间隔 (秒)")
    MINIMAX_POLL_MAX_ATTEMPTS: int = Field(300, ge=1, description="最大轮询次数")
    MINIMAX_POLL_TIMEOUT_SEC: float = Field(900.0, gt=0, description="轮询总时长上限 (秒)")

    # --- Pydantic 配置: 允许从 .env 读取，忽略多余字段 ---
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    def model_post_init(self, __context):
        """后处理：初始化默认路径"""
        if not self.AUDIO_DIR:
            self.AUDIO_DIR = self.DATA_DIR / "audio"
        if not self.LOG_DIR:
            self.LOG_DIR = self.DATA_DIR / "logs"
        if not self.DB_PATH:
            self.DB_PATH = self.DATA_DIR / "voicepaper.db"

        for path in [self.DATA_DIR, self.AUDIO_DIR, self.LOG_DIR]:
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError:
                pass  # 可能是权限问题，写文件时会报错

        if not self.APP_VERSION or self.APP_VERSION == "0.0.0":
            self.APP_VERSION = "0.1.0"


# ===================================================
# 全局单例与兼容层
# ===================================================
try:
    settings = AppSettings()
except Exception as e:
    # .env 格式错误时不带 .env 重试，避免静默崩溃
    print(f"CRITICAL CONFIG ERROR: {e}")
    settings = AppSettings(_env_file=None)


def _export_to_module():
    """将 settings 的属性映射到模块全局变量，调用方统一使用 `config.X`。"""
    current_module = sys.modules[__name__]
    for key, value in settings.model_dump().items():
        # SecretStr 需要显式转为字符串
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        setattr(current_module, key, value)


_export_to_module()


def reload_config():
    """重新加载 .env 与环境变量"""
    from dotenv import load_dotenv
    load_dotenv(BASE_DIR / ".env", override=True)
    global settings
    settings = AppSettings()
    _export_to_module()


def get_startup_info() -> dict:
    """启动信息（不含密钥）"""
    return {
        "app_version": settings.APP_VERSION,
        "python_version": sys.version.split()[0],
        "data_dir": str(settings.DATA_DIR),
        "db_path": str(settings.DB_PATH),
        "tts_model": settings.MINIMAX_MODEL,
        "tts_voice": settings.MINIMAX_VOICE_ID,
        "api_key_configured": bool(get_minimax_api_key()),
        "pid": os.getpid(),
    }


def validate_required_config() -> list[str]:
    missing = []
    if not get_minimax_api_key():
        missing.append("MINIMAX_API_KEY")
    return missing


def get_minimax_api_key() -> str:
    """获取 MiniMax API Key"""
    return settings.MINIMAX_API_KEY.get_secret_value() if settings.MINIMAX_API_KEY else ""
