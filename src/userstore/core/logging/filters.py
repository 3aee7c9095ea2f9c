"""
Logging filters.

CorrelationIdFilter
    Guarantees every LogRecord has a `correlation_id` attribute so formatters can
    reference `%(correlation_id)s` without KeyError. The id lives in a
    contextvars.ContextVar, which survives `await` boundaries and stays isolated
    per asyncio task. Whatever calls into the repositories (an HTTP middleware, a
    worker loop, a test) sets it with `set_correlation_id()`; when nothing is set
    the sentinel "-" is used.

RedactFilter
    Replaces the value of sensitive `extra` keys (password, token, ...) before a
    record reaches any handler. Repositories already log keys rather than values;
    this is the net under that rule.

Both filters always return True: they annotate records and never drop them.
"""
import contextvars
import logging
from logging import LogRecord

_correlation_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def set_correlation_id(correlation_id: str | None):
    """
    Set the correlation id in the current context.

    Returns:
        token: pass it to reset_correlation_id() to restore the previous value
    """
    return _correlation_id_ctx.set(correlation_id)


def reset_correlation_id(token) -> None:
    _correlation_id_ctx.reset(token)


def get_correlation_id() -> str | None:
    return _correlation_id_ctx.get()


class CorrelationIdFilter(logging.Filter):
    """
    Resolution order for `record.correlation_id`:
      1. an explicit `extra={"correlation_id": ...}` on the call
      2. the contextvar
      3. "-"
    """

    def filter(self, record: LogRecord) -> bool:
        record.correlation_id = (
            getattr(record, "correlation_id", None) or get_correlation_id() or "-"
        )
        return True


class RedactFilter(logging.Filter):
    SENSITIVE = {
        "password",
        "old_password",
        "old_hashed_password",
        "secret",
        "token",
        "access_token",
        "refresh_token",
        "authorization",
    }
    MASK = "***REDACTED***"

    def filter(self, record: LogRecord) -> bool:
        for key in list(record.__dict__.keys()):
            if key.lower() in self.SENSITIVE:
                record.__dict__[key] = self.MASK
        return True
