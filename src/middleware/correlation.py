"""Request correlation and routing-subject logging context.

Every routing decision is logged with two identifiers:
- the correlation ID of the request that triggered it
- the effective subject the decision was made for (the impersonated
  user while an admin is "viewing as", otherwise the caller)

Usage:
    from fastapi import FastAPI
    from middleware.correlation import CorrelationIdMiddleware

    app = FastAPI()
    app.add_middleware(CorrelationIdMiddleware)

    # Inside a handler, once the effective identity is known:
    with subject_context(effective.effective_id):
        result = await guard.check(...)
"""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar, Token
from typing import Any, Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


_correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_subject_id_ctx: ContextVar[Optional[str]] = ContextVar("routing_subject_id", default=None)

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

DEFAULT_LOG_FORMAT = (
    "%(asctime)s [%(correlation_id)s] [subject=%(subject_id)s] %(levelname)s "
    "%(name)s: %(message)s"
)


def get_correlation_id() -> Optional[str]:
    """Get the correlation ID of the current request, or None."""
    return _correlation_id_ctx.get()


def set_correlation_id(correlation_id: str) -> Token[Optional[str]]:
    return _correlation_id_ctx.set(correlation_id)


def reset_correlation_id(token: Token[Optional[str]]) -> None:
    _correlation_id_ctx.reset(token)


def get_subject_id() -> Optional[str]:
    """Get the effective subject being routed in the current context."""
    return _subject_id_ctx.get()


class subject_context:
    """Context manager binding the effective subject for log records.

    Usage:
        with subject_context("user-42"):
            logger.info("evaluated")   # record.subject_id == "user-42"
    """

    def __init__(self, subject_id: Optional[str]):
        self.subject_id = subject_id
        self._token: Optional[Token[Optional[str]]] = None

    def __enter__(self) -> Optional[str]:
        self._token = _subject_id_ctx.set(self.subject_id)
        return self.subject_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _subject_id_ctx.reset(self._token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Attach a correlation ID to every request and response.

    The incoming header is reused when present so a browser navigation
    and the guard checks it triggers share one ID.
    """

    def __init__(
        self,
        app,
        header_name: str = CORRELATION_ID_HEADER,
        generator: Optional[Callable[[], str]] = None,
    ):
        super().__init__(app)
        self.header_name = header_name
        self.generator = generator or (lambda: str(uuid.uuid4()))

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        correlation_id = request.headers.get(self.header_name) or self.generator()
        token = set_correlation_id(correlation_id)

        try:
            request.state.correlation_id = correlation_id
            response = await call_next(request)
            response.headers[self.header_name] = correlation_id
            response.headers[REQUEST_ID_HEADER] = correlation_id
            return response
        finally:
            reset_correlation_id(token)


class CorrelationIdFilter(logging.Filter):
    """Logging filter adding correlation_id and subject_id to records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        # Explicit extra={"subject_id": ...} wins over the context
        if not getattr(record, "subject_id", None):
            record.subject_id = get_subject_id() or "-"
        return True


def configure_correlation_logging(
    log_format: Optional[str] = None,
    level: int = logging.INFO,
) -> logging.Handler:
    """Configure root logging with correlation and subject fields.

    Safe to call more than once; the handler is only installed once.

    Args:
        log_format: Custom log format. May use %(correlation_id)s and
            %(subject_id)s.
        level: Logging level.

    Returns:
        The installed handler.
    """
    root_logger = logging.getLogger()
    for existing in root_logger.handlers:
        if getattr(existing, "_routing_correlation", False):
            existing.setLevel(level)
            root_logger.setLevel(level)
            return existing

    handler = logging.StreamHandler()
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(logging.Formatter(log_format or DEFAULT_LOG_FORMAT))
    handler.setLevel(level)
    handler._routing_correlation = True

    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return handler
