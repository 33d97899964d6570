"""Idempotency ledger repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from modules.payments.models import PaymentReservation


class IPaymentReservationRepository(ABC):
    @abstractmethod
    def get_by_reference(self, reference: str) -> Optional[PaymentReservation]:
        """Return the reservation for ``reference``, if any."""

    @abstractmethod
    def reserve(self, data: Dict[str, Any]) -> PaymentReservation:
        """Insert a reservation.

        Raises ``django.db.IntegrityError`` when the reference is taken.
        """
