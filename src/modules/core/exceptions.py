"""Error taxonomy shared by every module.

Each domain exception carries a machine-readable ``code`` and the HTTP
status the API layer should answer with.  Module exceptions subclass one
of the families below so callers can catch a whole family:

- ``NotFound`` (404): a referenced product/order/payment/address is missing.
- ``Conflict`` (409): the request is well-formed but collides with current
  state (out of stock, illegal state transition, duplicate payment).
- ``AuthenticityFailed`` (400): gateway evidence failed verification.
- ``GatewayUnavailable`` (503): payment provider misconfigured/unreachable.
- ``RetryableError`` (503): transient failure; the whole unit of work was
  rolled back and the client may retry.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for business-rule violations surfaced to API callers."""

    code = "domain_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str = "", **context: Any) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.context = context

    @property
    def detail(self) -> str:
        return str(self)


class NotFound(DomainError):
    """The requested resource does not exist."""

    code = "not_found"
    status_code = 404


class Conflict(DomainError):
    """The request conflicts with the current state of the resource."""

    code = "conflict"
    status_code = 409


class AuthenticityFailed(DomainError):
    """Payment evidence could not be authenticated."""

    code = "authenticity_failed"
    status_code = 400


class RetryableError(DomainError):
    """A transient failure rolled back the operation; retry later."""

    code = "retryable_error"
    status_code = 503
    retryable = True


class GatewayUnavailable(RetryableError):
    """The payment gateway is not configured or could not be reached."""

    code = "gateway_unavailable"


class ImmutableRecordError(Exception):
    """An append-only record was updated or deleted."""
