"""Tests for the logging setup."""

import logging

import structlog
from storefront.utils.logging import configure_logging, get_log_level, log_context


def test_level_follows_environment(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setenv("ENV", "production")
    assert get_log_level() == "INFO"

    monkeypatch.setenv("ENV", "test")
    assert get_log_level() == "WARNING"

    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    assert get_log_level() == "ERROR"


def test_configure_without_files(monkeypatch):
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    configure_logging(log_dir=None)

    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert all(not isinstance(handler, logging.FileHandler) for handler in root.handlers)
    assert logging.getLogger("httpx").level == logging.WARNING


def test_rotating_files_are_created(tmp_path, monkeypatch):
    monkeypatch.setenv("ENV", "development")

    configure_logging(log_dir=tmp_path / "logs")

    assert (tmp_path / "logs" / "storefront.log").exists()
    assert (tmp_path / "logs" / "storefront_error.log").exists()
    configure_logging(log_dir=None)


def test_log_context_is_scoped():
    with log_context(sync="cart"):
        assert structlog.contextvars.get_contextvars() == {"sync": "cart"}
    assert "sync" not in structlog.contextvars.get_contextvars()


def test_log_file_prefix(tmp_path, monkeypatch):
    monkeypatch.setenv("ENV", "development")

    configure_logging(log_dir=tmp_path, log_file_prefix="shopping")

    assert sorted(path.name for path in tmp_path.iterdir()) == ["shopping.log", "shopping_error.log"]
    configure_logging(log_dir=None)
