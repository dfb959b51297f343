"""Domain-aware exception handler for ``drf-standardized-errors``.

Every API error is rendered by drf-standardized-errors as::

    {"type": "client_error", "errors": [{"code": "...", "detail": "...", "attr": null}]}

This handler teaches it about ``modules.core.exceptions.DomainError`` so
services can raise business errors without the views translating them.
Retryable errors carry a ``Retry-After`` header.
"""

from __future__ import annotations

from typing import Optional

import structlog
from django.conf import settings
from drf_standardized_errors.handler import ExceptionHandler
from rest_framework import exceptions
from rest_framework.response import Response

from modules.core.exceptions import DomainError

logger = structlog.get_logger(__name__)


class DomainAPIException(exceptions.APIException):
    """Wraps a ``DomainError`` with its own status code and error code."""

    def __init__(self, error: DomainError) -> None:
        self.status_code = error.status_code
        if error.retryable:
            self.wait = settings.RETRY_AFTER_SECONDS
        super().__init__(detail=error.detail, code=error.code)


class DomainExceptionHandler(ExceptionHandler):
    def convert_known_exceptions(self, exc: Exception) -> Exception:
        if isinstance(exc, DomainError):
            return DomainAPIException(exc)
        return super().convert_known_exceptions(exc)

    def report_exception(
        self, exc: exceptions.APIException, response: Optional[Response]
    ) -> None:
        if isinstance(exc, DomainAPIException):
            log = logger.bind(
                code=self.exc.code,
                status_code=exc.status_code,
                error=type(self.exc).__name__,
            )
            if exc.status_code >= 500:
                log.warning("api.domain_error", detail=str(exc.detail))
            else:
                log.info("api.domain_error", detail=str(exc.detail))
            return
        super().report_exception(exc, response)
