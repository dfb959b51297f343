"""Payment gateway registry.

Adapters are selected by payment method from ``settings.PAYMENT_GATEWAYS``::

    PAYMENT_GATEWAYS = {
        "STRIPE": {"BACKEND": "dotted.path.Gateway", "OPTIONS": {...}},
    }

``set_gateway()`` / ``reset_gateways()`` pin a ready-made instance for a
method (useful for tests that need to inspect or script a fake).
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import structlog
from django.conf import settings
from django.utils.module_loading import import_string

from modules.payments.exceptions import GatewayUnavailable, UnknownPaymentProvider
from modules.payments.gateways.base import (
    GatewayIntent,
    GatewayStatus,
    PaymentEvidence,
    PaymentGateway,
    RefundResult,
)

__all__ = [
    "GatewayIntent",
    "GatewayRegistry",
    "GatewayStatus",
    "PaymentEvidence",
    "PaymentGateway",
    "RefundResult",
    "reset_gateways",
    "set_gateway",
]

logger = structlog.get_logger(__name__)

_overrides: Dict[str, PaymentGateway] = {}


def set_gateway(method: str, gateway: PaymentGateway) -> None:
    """Serve *gateway* for *method* until ``reset_gateways()``."""
    _overrides[method] = gateway


def reset_gateways() -> None:
    _overrides.clear()


class GatewayRegistry:
    def __init__(self, config: Mapping[str, Mapping[str, Any]]) -> None:
        self._config = config

    @classmethod
    def from_settings(cls) -> GatewayRegistry:
        return cls(getattr(settings, "PAYMENT_GATEWAYS", {}))

    def get(self, method: str) -> PaymentGateway:
        """Return a configured adapter for *method*.

        Raises:
            GatewayUnavailable: no backend for the method, the backend cannot
                be imported, or its credentials are missing.
        """
        gateway = self._build(method)
        if gateway is None or not gateway.is_configured():
            logger.warning("gateway.unavailable", payment_method=method)
            raise GatewayUnavailable(
                f"Payment method {method} is not available.", payment_method=method
            )
        return gateway

    def for_provider(self, provider: str) -> tuple[str, PaymentGateway]:
        """Resolve a webhook path segment (``stripe``) to ``(method, adapter)``.

        Raises:
            UnknownPaymentProvider: no method is registered under *provider*.
        """
        method = provider.upper()
        if method not in self._config and method not in _overrides:
            raise UnknownPaymentProvider(
                f"Unknown payment provider {provider!r}.", provider=provider
            )
        return method, self.get(method)

    def availability(self) -> Dict[str, bool]:
        """``{method: configured}`` for every registered method."""
        methods = sorted(set(self._config) | set(_overrides))
        result = {}
        for method in methods:
            gateway = self._build(method)
            result[method] = bool(gateway and gateway.is_configured())
        return result

    def _build(self, method: str) -> Optional[PaymentGateway]:
        if method in _overrides:
            return _overrides[method]
        entry = self._config.get(method)
        if not entry or not entry.get("BACKEND"):
            return None
        try:
            backend = import_string(entry["BACKEND"])
        except ImportError:
            logger.exception("gateway.backend_import_failed", payment_method=method)
            return None
        return backend(**entry.get("OPTIONS", {}))
