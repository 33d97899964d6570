"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.

Concurrency control: services lock the row with ``select_for_update()``
and ``save`` additionally compares ``version`` before writing, so an
update computed from a stale read never lands (``ConcurrentUpdate``).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from modules.core.outbox import record_domain_events
from modules.orders.models import Order, OrderItem, TimelineEntry
from modules.orders.repositories.interfaces import IOrderRepository
from shared.domain.exceptions import ConcurrentUpdate

logger = structlog.get_logger(__name__)

_NON_UPDATABLE = {"id", "created_at", "order_number"}


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically."""
        order = Order(
            customer_id=data["customer_id"],
            seller_id=data["seller_id"],
            total=data["total"],
            currency=data["currency"],
            payment_reference=data.get("payment_reference"),
            commission_rate=data.get("commission_rate", 0),
            delivery_info=data.get("delivery_info") or {},
        )
        order.save()

        items = data.get("items", [])
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product_id=item["product_id"],
                    name=item["name"],
                    unit_price=item["unit_price"],
                    quantity=item["quantity"],
                )
                for item in items
            ]
        )

        logger.info("order.created", order_id=str(order.id), item_count=len(items))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with its items prefetched.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return Order.objects.prefetch_related("items").filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return Order.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_payment_reference(self, reference: str) -> Optional[Order]:
        return (
            Order.objects.prefetch_related("items")
            .filter(payment_reference=reference)
            .first()
        )

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """List orders with optional filters and prefetched items.

        Supported filter keys: any ``Order`` lookup, e.g. ``status``,
        ``customer_id``, ``seller_id``, ``created_at__gte``.
        """
        queryset = Order.objects.prefetch_related("items")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist an order and its pending domain events.

        Updates are a compare-and-swap on ``version``: when another
        transaction saved first, nothing is written and
        ``ConcurrentUpdate`` is raised.
        """
        if entity._state.adding:
            entity.save()
        else:
            expected = entity.version
            entity.version = expected + 1
            entity.updated_at = timezone.now()
            values = {
                field.attname: getattr(entity, field.attname)
                for field in Order._meta.concrete_fields
                if field.name not in _NON_UPDATABLE
            }
            updated = Order.objects.filter(pk=entity.pk, version=expected).update(
                **values
            )
            if not updated:
                entity.version = expected
                logger.warning(
                    "order.concurrent_update",
                    order_id=str(entity.pk),
                    expected_version=expected,
                )
                raise ConcurrentUpdate(
                    "The order was changed by another request; reload and retry.",
                    order_id=str(entity.pk),
                    expected_version=expected,
                )

        event_count = len(entity.domain_events)
        record_domain_events(entity, topic="orders")
        logger.info(
            "order.saved",
            order_id=str(entity.id),
            version=entity.version,
            event_count=event_count,
        )
        return entity

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    def add_timeline_entry(
        self,
        order_id: UUID,
        message: str,
        sender_id: str,
        sender_type: str,
        old_status: str = "",
        new_status: str = "",
    ) -> TimelineEntry:
        """Record an entry in the order's timeline."""
        entry = TimelineEntry.objects.create(
            order_id=order_id,
            message=message,
            sender_id=sender_id,
            sender_type=sender_type,
            old_status=old_status,
            new_status=new_status,
        )
        logger.info(
            "order.timeline_entry_added",
            order_id=str(order_id),
            sender_type=sender_type,
            new_status=new_status or None,
        )
        return entry

    def list_timeline(self, order_id: UUID) -> List[TimelineEntry]:
        return list(TimelineEntry.objects.filter(order_id=order_id))
