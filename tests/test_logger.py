import logging
import re

import memex.logger as logger_module
from memex.logger import generate_timestamped_log_path, setup_logging


def _restore_root_logger(
    original_handlers: list[logging.Handler], original_level: int
) -> None:
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        if handler not in original_handlers:
            handler.close()
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


def test_generate_timestamped_log_path(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    generated_path = generate_timestamped_log_path("~/.config/memex/logs/memex.log")

    assert generated_path.parent == tmp_path / ".config" / "memex" / "logs"
    assert re.match(
        r"\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}_memex\.log", generated_path.name
    )


def test_setup_logging_writes_to_file_only(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    root_logger = logging.getLogger()
    original_handlers = list(root_logger.handlers)
    original_level = root_logger.level

    try:
        setup_logging("INFO", "~/.config/memex/logs/memex.log")
        logging.getLogger("memex.tests.logger").info("file logging works")
        for handler in logging.getLogger().handlers:
            handler.flush()

        log_path = tmp_path / ".config" / "memex" / "logs" / "memex.log"
        assert log_path.exists()
        assert "file logging works" in log_path.read_text(encoding="utf-8")
        assert all(
            isinstance(handler, logging.FileHandler)
            for handler in logging.getLogger().handlers
        )
        assert logging.getLogger("urllib3").level == logging.WARNING
    finally:
        _restore_root_logger(original_handlers, original_level)


def test_setup_logging_archives_existing_file_once(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setattr(logger_module, "_ROLLED_LOG_PATHS", set())
    log_path = tmp_path / ".config" / "memex" / "logs" / "memex.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_path.write_text("old memex log\n", encoding="utf-8")

    root_logger = logging.getLogger()
    original_handlers = list(root_logger.handlers)
    original_level = root_logger.level

    try:
        setup_logging("INFO", "~/.config/memex/logs/memex.log")
        logging.getLogger("memex.tests.logger").info("new memex log line")
        for handler in logging.getLogger().handlers:
            handler.flush()

        archived = list(log_path.parent.glob("*_memex.log"))
        assert len(archived) == 1
        assert archived[0].read_text(encoding="utf-8") == "old memex log\n"

        setup_logging("INFO", "~/.config/memex/logs/memex.log")
        assert len(list(log_path.parent.glob("*_memex.log"))) == 1
    finally:
        _restore_root_logger(original_handlers, original_level)


def test_native_host_log_is_appended_not_archived(monkeypatch, tmp_path):
    monkeypatch.setattr(logger_module, "_ROLLED_LOG_PATHS", set())
    log_path = tmp_path / "native-host.log"
    log_path.write_text("previous session\n", encoding="utf-8")

    root_logger = logging.getLogger()
    original_handlers = list(root_logger.handlers)
    original_level = root_logger.level
    try:
        setup_logging("INFO", log_path, archive_existing=False)
        assert list(tmp_path.glob("*_native-host.log")) == []
        assert log_path.read_text(encoding="utf-8").startswith("previous session")
    finally:
        _restore_root_logger(original_handlers, original_level)


def test_setup_logging_without_file_is_a_no_op():
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    setup_logging("DEBUG", None)
    assert root_logger.handlers == handlers
