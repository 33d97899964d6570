"""Refund ledger exceptions."""

from __future__ import annotations

from shared.domain.exceptions import NotFound, ValidationError


class RefundNotFound(NotFound):
    """The requested refund does not exist."""

    code = "refund_not_found"


class RefundLimitExceeded(ValidationError):
    """The refund would take the order's refunded total above its total."""

    code = "refund_limit_exceeded"
