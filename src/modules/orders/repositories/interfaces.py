"""Order repository interface.

Extends ``IRepository[Order]`` with the methods the order services need:
row locking, look-up by payment reference, creation with items and the
append-only timeline.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.orders.models import Order, TimelineEntry


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and TimelineEntry
    records.  ``save`` must compare-and-swap on ``version`` and persist the
    aggregate's pending domain events in the same transaction.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` must include ``customer_id``, ``seller_id``, ``total``,
        ``currency``, ``payment_reference`` and ``items`` (list of dicts
        with ``product_id``, ``name``, ``unit_price``, ``quantity``).
        """

    @abstractmethod
    def get_by_payment_reference(self, reference: str) -> Optional[Order]:
        """Retrieve the order produced by a payment reference."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """List orders with optional filters."""

    @abstractmethod
    def add_timeline_entry(
        self,
        order_id: UUID,
        message: str,
        sender_id: str,
        sender_type: str,
        old_status: str = "",
        new_status: str = "",
    ) -> TimelineEntry:
        """Append an entry to the order's timeline."""

    @abstractmethod
    def list_timeline(self, order_id: UUID) -> List[TimelineEntry]:
        """Return the order's timeline, oldest first."""
