"""Tests for the application entry point."""

import json

import sameorigin.main as app_main
from sameorigin.core import config_manager


def test_invalid_config_exits_with_error(isolated_app_home, monkeypatch):
    config_path = isolated_app_home / "config.json"
    isolated_app_home.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps({"proxy": {"cookie_policy": "lax"}}), encoding="utf-8")
    monkeypatch.setattr(config_manager, "_config_instance", None)
    monkeypatch.setattr(app_main, "setup_logging", lambda level, to_file: None)
    monkeypatch.setattr(app_main, "setup_exception_handler", lambda: None)

    assert app_main.main() == 1


def test_setup_logging_writes_rotating_file(isolated_app_home):
    import logging

    app_main.setup_logging("DEBUG", to_file=True)
    try:
        logging.getLogger("sameorigin.test").info("hello")
        log_file = isolated_app_home / "logs" / "sameorigin_proxy.log"
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello" in log_file.read_text(encoding="utf-8")
        assert logging.getLogger().level == logging.DEBUG
    finally:
        for handler in logging.getLogger().handlers[:]:
            handler.close()
            logging.getLogger().removeHandler(handler)
