"""Unit tests for Order, OrderItem and TimelineEntry models."""

from __future__ import annotations

import re
from decimal import Decimal

import pytest

from django.db import IntegrityError, transaction

from modules.core.actors import Actor, ActorRole
from modules.orders.constants import OrderStatus
from modules.orders.models import AppendOnlyError, Order, OrderItem, TimelineEntry

pytestmark = pytest.mark.unit


class TestOrderNumber:
    def test_order_number_format(self, place_order):
        order = place_order()
        assert re.fullmatch(r"ORD-\d{8}-[0-9A-F]{6}", order.order_number)

    def test_order_numbers_are_unique(self, place_order):
        numbers = {place_order().order_number for _ in range(5)}
        assert len(numbers) == 5


class TestOrderMoney:
    def test_items_snapshot_the_cart(self, place_order):
        order = place_order(total=500_000)

        items = list(OrderItem.objects.filter(order=order).order_by("product_id"))
        assert [i.product_id for i in items] == ["prod-1", "prod-2"]
        assert sum(i.subtotal for i in items) == order.total

    def test_commission_snapshot_from_default_rate(self, place_order):
        order = place_order(total=500_000)

        stored = Order.objects.get(pk=order.pk)
        assert stored.commission_rate == Decimal("0.05")
        assert stored.commission_amount == 25_000

    def test_refunded_amount_ignores_failed_entries(self):
        order = Order(
            total=10_000,
            refunds=[
                {"amount": 3_000, "status": "pending"},
                {"amount": 2_000, "status": "failed"},
                {"amount": 1_000, "status": "completed"},
            ],
        )

        assert order.refunded_amount == 4_000
        assert order.refundable_amount == 6_000

    def test_item_quantity_must_be_positive(self, place_order):
        order = place_order()

        with pytest.raises(IntegrityError), transaction.atomic():
            OrderItem.objects.create(
                order=order, product_id="p", name="x", unit_price=100, quantity=0
            )


class TestOrderRoles:
    def test_roles_relative_to_order(self):
        order = Order(customer_id="u-1", seller_id="u-2")

        assert order.roles_of(Actor(uid="u-1")) == {ActorRole.BUYER}
        assert order.roles_of(Actor(uid="u-2", role=ActorRole.SELLER)) == {
            ActorRole.SELLER
        }
        assert order.roles_of(Actor(uid="u-3", role=ActorRole.SELLER)) == set()
        assert order.roles_of(Actor.system()) == {ActorRole.SYSTEM}
        assert ActorRole.ADMIN in order.roles_of(
            Actor(uid="u-9", role=ActorRole.ADMIN, is_admin=True)
        )

    def test_seller_role_claim_does_not_grant_ownership(self):
        order = Order(customer_id="u-1", seller_id="u-2")
        assert order.roles_of(Actor(uid="u-1", role=ActorRole.SELLER)) == {
            ActorRole.BUYER
        }

    def test_terminal_flags(self):
        assert Order(status=OrderStatus.COMPLETED).is_terminal
        assert Order(status=OrderStatus.CANCELLED).is_terminal
        assert not Order(status=OrderStatus.DISPUTED).is_terminal


class TestTimelineAppendOnly:
    def test_entries_cannot_be_edited(self, place_order):
        order = place_order()
        entry = TimelineEntry.objects.filter(order=order).first()

        entry.message = "rewritten"
        with pytest.raises(AppendOnlyError):
            entry.save()

        assert TimelineEntry.objects.get(pk=entry.pk).message != "rewritten"

    def test_entries_cannot_be_deleted(self, place_order):
        order = place_order()
        entry = TimelineEntry.objects.filter(order=order).first()

        with pytest.raises(AppendOnlyError):
            entry.delete()

        assert TimelineEntry.objects.filter(pk=entry.pk).exists()
