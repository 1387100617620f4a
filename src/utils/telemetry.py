"""Sentry 错误上报

后台合成失败只会写日志（请求早已返回），接入 Sentry 后 ERROR 级日志会作为事件上报，
便于发现 MiniMax 限流、鉴权失效等问题。
"""
import logging

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

import config

logger = logging.getLogger(__name__)

# 合成请求量不大，保留少量性能追踪即可
TRACES_SAMPLE_RATE = 0.2


def init_sentry() -> bool:
    """SENTRY_DSN 为空时不启用，返回是否完成初始化。"""
    dsn = getattr(config, "SENTRY_DSN", "") or ""
    if not dsn:
        logger.info("Sentry DSN 未配置，跳过初始化。")
        return False

    try:
        sentry_sdk.init(
            dsn=dsn,
            release=f"voicepaper@{config.APP_VERSION}",
            integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
            traces_sample_rate=TRACES_SAMPLE_RATE,
            environment="production",
        )
    except Exception as e:
        logger.error(f"Sentry SDK 初始化失败: {e}")
        return False

    logger.info(f"Sentry 已启用（release voicepaper@{config.APP_VERSION}）")
    return True
