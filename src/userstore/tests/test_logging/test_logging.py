import asyncio
import json
import logging
import logging.handlers
import sys

import pytest

from userstore.config.settings import Settings
from userstore.core.logging import (
    CorrelationIdFilter,
    RedactFilter,
    get_correlation_id,
    make_dict_config,
    reset_correlation_id,
    set_correlation_id,
    setup_logging,
    stop_queue_logging,
)
from userstore.core.logging.formatters import ColorFormatter, JsonFormatter


def make_record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("userstore.test", logging.INFO, __file__, 10, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationId:

    def test_default_is_dash(self):
        record = make_record()
        CorrelationIdFilter().filter(record)
        assert record.correlation_id == "-"

    def test_contextvar_value_is_used(self):
        token = set_correlation_id("req-42")
        try:
            record = make_record()
            CorrelationIdFilter().filter(record)
            assert record.correlation_id == "req-42"
        finally:
            reset_correlation_id(token)

        assert get_correlation_id() is None

    def test_explicit_extra_wins(self):
        token = set_correlation_id("from-context")
        try:
            record = make_record(correlation_id="explicit")
            CorrelationIdFilter().filter(record)
            assert record.correlation_id == "explicit"
        finally:
            reset_correlation_id(token)

    @pytest.mark.asyncio
    async def test_isolated_per_task(self):
        async def worker(cid: str) -> str | None:
            set_correlation_id(cid)
            await asyncio.sleep(0)
            return get_correlation_id()

        assert await asyncio.gather(worker("a"), worker("b")) == ["a", "b"]
        assert get_correlation_id() is None


class TestRedactFilter:

    def test_sensitive_extras_are_masked(self):
        record = make_record(password="hunter2", Token="abc", email="a@x.com")

        assert RedactFilter().filter(record) is True
        assert record.password == RedactFilter.MASK
        assert record.Token == RedactFilter.MASK
        assert record.email == "a@x.com"


class TestFormatters:

    def test_json_formatter_fields_and_extras(self):
        record = make_record("created", model="User", fields={"email"}, correlation_id="c-1")

        payload = json.loads(JsonFormatter(env="testing", service="userstore").format(record))

        assert payload["message"] == "created"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "userstore.test"
        assert payload["correlation_id"] == "c-1"
        assert payload["env"] == "testing"
        assert payload["service"] == "userstore"
        assert payload["model"] == "User"
        # sets are not JSON; they are stringified rather than dropped
        assert payload["fields"] == "{'email'}"
        assert "args" not in payload and "msg" not in payload

    def test_json_formatter_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        payload = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in payload["exc_info"]

    def test_color_formatter(self):
        line = ColorFormatter().format(make_record("hi", correlation_id="c-2"))

        assert "c-2" in line
        assert line.endswith("hi")
        assert "\033[32m" in line


class TestDictConfig:

    def test_stdout_uses_console_handlers(self):
        config = make_dict_config(Settings(_env_file=None, LOG_TO_STDOUT=True))

        assert set(config["handlers"]) == {"console", "error_console"}
        assert config["loggers"][""]["handlers"] == ["console", "error_console"]
        assert config["handlers"]["console"]["filters"] == ["correlation_id", "redact"]

    def test_files_when_not_stdout(self, tmp_path):
        config = make_dict_config(Settings(_env_file=None, LOG_TO_STDOUT=False, LOG_DIR=tmp_path))

        assert set(config["handlers"]) == {"console", "file", "error_file"}
        assert config["handlers"]["file"]["filename"] == str(tmp_path / "userstore.log")
        assert config["handlers"]["error_file"]["level"] == "ERROR"

    def test_sql_logging_toggle(self):
        quiet = make_dict_config(Settings(_env_file=None))
        loud = make_dict_config(Settings(_env_file=None, ENABLE_SQL_LOGGING=True))

        assert quiet["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"
        assert loud["loggers"]["sqlalchemy.engine"]["level"] == "INFO"

    def test_text_format_uses_color_formatter(self):
        config = make_dict_config(Settings(_env_file=None, LOG_FORMAT="TEXT"))
        assert config["formatters"]["standard"]["()"] is ColorFormatter
        assert config["handlers"]["console"]["formatter"] == "standard"


class TestQueueLogging:

    def test_records_reach_file_through_queue(self, tmp_path):
        """
        Behavior:
          - With LOG_USE_QUEUE the root logger only holds a QueueHandler.
          - After stop_queue_logging() every record is flushed to the file, redacted.
        """
        settings = Settings(_env_file=None, LOG_TO_STDOUT=False, LOG_DIR=tmp_path, LOG_USE_QUEUE=True)
        try:
            setup_logging(settings)
            root_handlers = logging.getLogger().handlers
            assert any(isinstance(h, logging.handlers.QueueHandler) for h in root_handlers)

            logging.getLogger("userstore.queue_test").info(
                "queued.message", extra={"password": "hunter2"}
            )
            stop_queue_logging()

            lines = (tmp_path / "userstore.log").read_text(encoding="utf-8").splitlines()
            payloads = [json.loads(line) for line in lines]
            [entry] = [p for p in payloads if p["message"] == "queued.message"]
            assert entry["password"] == RedactFilter.MASK
        finally:
            stop_queue_logging()
            setup_logging(Settings(_env_file=None))
