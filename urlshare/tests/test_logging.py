import logging
from logging.handlers import RotatingFileHandler

from urlshare.config.settings import Settings, settings
from urlshare.observability import logging as event_logging
from urlshare.util.logger import configure_logging, get_logger


def test_format_payload_quotes_strings_only():
    text = event_logging._format_payload({"key": "1", "count": 3})

    assert text == "key='1' count=3"


def test_configure_logging_writes_to_configured_dir(tmp_path):
    log_dir = tmp_path / "logs"
    try:
        configured = configure_logging(Settings(log_dir=str(log_dir), log_level="debug"))

        assert configured.level == logging.DEBUG
        assert configured.propagate is False
        file_handlers = [h for h in configured.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1

        get_logger("test").info("hello from test")
        file_handlers[0].flush()
        assert "hello from test" in (log_dir / "urlshare.log").read_text(encoding="utf-8")
    finally:
        configure_logging(settings)


def test_configure_logging_without_log_dir_uses_stream_only(tmp_path):
    try:
        configured = configure_logging(Settings(log_dir="", log_level="nonsense"))

        assert configured.level == logging.INFO
        assert not any(isinstance(h, RotatingFileHandler) for h in configured.handlers)
    finally:
        configure_logging(settings)


def test_log_request_line_names_handler(tmp_path):
    log_dir = tmp_path / "logs"
    try:
        configure_logging(Settings(log_dir=str(log_dir)))

        event_logging.log_request("GET", "http://testserver/1", 307, 1.5, handler="redirect")
        for handler in logging.getLogger("urlshare").handlers:
            handler.flush()

        text = (log_dir / "urlshare.log").read_text(encoding="utf-8")
        assert "GET http://testserver/1 status=307 handler=redirect elapsed_ms=1.5" in text
    finally:
        configure_logging(settings)
