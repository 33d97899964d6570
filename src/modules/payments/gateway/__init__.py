"""Payment gateway clients.

The active client is chosen with ``settings.PAYMENT_GATEWAY`` (dotted path).
"""

from __future__ import annotations

from django.conf import settings
from django.utils.module_loading import import_string

from modules.payments.gateway.base import GatewayTransaction, IPaymentGateway

__all__ = ["GatewayTransaction", "IPaymentGateway", "get_payment_gateway"]


def get_payment_gateway() -> IPaymentGateway:
    return import_string(settings.PAYMENT_GATEWAY)()
