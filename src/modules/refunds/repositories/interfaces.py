"""Refund repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.refunds.models import RefundRecord


class IRefundRepository(IRepository["RefundRecord"]):
    """Repository contract for the refund ledger."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """List refunds with optional filters."""

    @abstractmethod
    def committed_amount(self, order_id: UUID) -> int:
        """Sum of the order's ``pending`` and ``completed`` refunds."""
