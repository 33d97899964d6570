"""Payment reservation repositories package."""

from modules.payments.repositories.django_repository import (
    PaymentReservationDjangoRepository,
)
from modules.payments.repositories.interfaces import IPaymentReservationRepository

__all__ = ["IPaymentReservationRepository", "PaymentReservationDjangoRepository"]
