"""Interfaces of the external collaborators triggered by the engine."""

from __future__ import annotations

from typing import Any, Dict, Protocol
from uuid import UUID


class INotificationService(Protocol):
    """Best-effort user notifications (email, push, SMS ...)."""

    def notify(self, user_id: str, kind: str, payload: Dict[str, Any]) -> None: ...


class IPayoutLedger(Protocol):
    """Seller earnings ledger.  Receivers must be idempotent per order."""

    def on_order_delivered(self, order_id: UUID) -> None: ...
