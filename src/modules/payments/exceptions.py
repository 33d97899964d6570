"""Payment verification exceptions.

No order is written when any of these is raised.
"""

from __future__ import annotations

from shared.domain.exceptions import DomainError


class GatewayError(DomainError):
    """The payment gateway could not be reached or answered with an error."""

    code = "gateway_error"
    http_status = 502


class PaymentNotSuccessful(DomainError):
    """The gateway reports the transaction as not successful."""

    code = "payment_not_successful"
    http_status = 402


class AmountMismatch(DomainError):
    """The charged amount or currency differs from the claimed order total."""

    code = "amount_mismatch"
    http_status = 422


class MultiSellerCartError(DomainError):
    """All items of one order must belong to the same seller."""

    code = "multi_seller_cart"
    http_status = 422
