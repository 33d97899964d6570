"""Default implementations of the engine's external collaborators.

The concrete classes are selected through ``settings.NOTIFICATION_SERVICE``
and ``settings.PAYOUT_LEDGER`` (dotted paths), so deployments can plug in
their own delivery mechanism without touching the service layer.
"""

from __future__ import annotations

from typing import Any, Dict
from uuid import UUID

import requests
import structlog
from django.conf import settings
from django.utils.module_loading import import_string

from shared.domain.collaborators import INotificationService, IPayoutLedger

logger = structlog.get_logger(__name__)


class LoggingNotificationService:
    """Writes notifications to the structured log (development default)."""

    def notify(self, user_id: str, kind: str, payload: Dict[str, Any]) -> None:
        logger.info("notification.sent", user_id=user_id, kind=kind, payload=payload)


class LoggingPayoutLedger:
    def on_order_delivered(self, order_id: UUID) -> None:
        logger.info("payout.order_delivered", order_id=str(order_id))


class HttpPayoutLedger:
    """Signals the earnings service over HTTP.

    Raises ``requests.RequestException`` on failure; the outbox dispatcher
    records it and retries later.
    """

    def __init__(self, url: str | None = None, timeout: float | None = None) -> None:
        self.url = url or settings.PAYOUT_LEDGER_URL
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT

    def on_order_delivered(self, order_id: UUID) -> None:
        response = requests.post(
            self.url,
            json={"order_id": str(order_id), "event": "order_delivered"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        logger.info("payout.signal_sent", order_id=str(order_id))


def get_notification_service() -> INotificationService:
    return import_string(settings.NOTIFICATION_SERVICE)()


def get_payout_ledger() -> IPayoutLedger:
    return import_string(settings.PAYOUT_LEDGER)()
