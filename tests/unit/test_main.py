import sys

import main


def test_parser_defaults_and_flags():
    args = main.build_parser().parse_args([])
    assert args.host is None
    assert args.port is None
    assert args.no_seed is False

    args = main.build_parser().parse_args(["--host", "127.0.0.1", "--port", "9000", "--no-seed"])
    assert args.host == "127.0.0.1"
    assert args.port == 9000
    assert args.no_seed is True


def test_main_returns_error_when_server_cannot_bind(monkeypatch):
    class _FailingServer:
        def __init__(self, *args, **kwargs):
            pass

        def start(self):
            raise OSError("address in use")

    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(main, "VoicePaperServer", _FailingServer)
    monkeypatch.setattr(main, "init_sentry", lambda: False)
    monkeypatch.setattr(main.LoggerManager, "setup_logger", classmethod(lambda cls, log_dir=None: None))

    assert main.main(["--no-seed", "--port", "0"]) == 1
