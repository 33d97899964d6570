"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  The DRF
exception handler (``modules.core.exceptions``) renders them with their
``http_status`` and ``details``.
"""

from __future__ import annotations

from shared.domain.exceptions import DomainError, NotFound


class OrderNotFound(NotFound):
    """The requested order does not exist."""

    code = "order_not_found"


class MissingPaymentReference(DomainError):
    """The order has no payment reference, so no refund can be recorded."""

    code = "missing_payment_reference"
    http_status = 500
