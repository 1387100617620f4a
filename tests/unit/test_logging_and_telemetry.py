import logging

import config
import utils.telemetry as telemetry
from utils.logger import LoggerManager, logger


def test_setup_logger_writes_rotating_file(tmp_path):
    LoggerManager.reset()
    try:
        root = LoggerManager.setup_logger(log_dir=tmp_path)
        assert LoggerManager.setup_logger(log_dir=tmp_path) is root
        logger.success("ready")
        for handler in root.handlers:
            handler.flush()
        assert "✅ ready" in (tmp_path / "voicepaper.log").read_text(encoding="utf-8")
        assert logging.getLogger("urllib3").level >= logging.WARNING
    finally:
        LoggerManager.reset()


def test_init_sentry_skipped_without_dsn(monkeypatch):
    monkeypatch.setattr(config, "SENTRY_DSN", "")
    called = []
    monkeypatch.setattr(telemetry.sentry_sdk, "init", lambda **kw: called.append(kw))
    assert telemetry.init_sentry() is False
    assert called == []


def test_init_sentry_with_dsn(monkeypatch):
    monkeypatch.setattr(config, "SENTRY_DSN", "https://key@sentry.example.test/1")
    captured = {}
    monkeypatch.setattr(telemetry.sentry_sdk, "init", lambda **kw: captured.update(kw))
    assert telemetry.init_sentry() is True
    assert captured["dsn"] == "https://key@sentry.example.test/1"
    assert captured["release"].startswith("voicepaper@")
    assert captured["traces_sample_rate"] == telemetry.TRACES_SAMPLE_RATE
    assert captured["integrations"]


def test_init_sentry_failure_is_logged_not_raised(monkeypatch):
    monkeypatch.setattr(config, "SENTRY_DSN", "not-a-dsn")

    def bad_init(**kw):
        raise ValueError("invalid dsn")

    monkeypatch.setattr(telemetry.sentry_sdk, "init", bad_init)
    assert telemetry.init_sentry() is False
