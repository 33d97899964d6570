"""Unit tests for the availability / wait-time sub-flow."""

from __future__ import annotations

from datetime import timedelta

import pytest
from freezegun import freeze_time

from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.orders.constants import (
    AvailabilityStatus,
    BuyerWaitResponse,
    OrderStatus,
    SenderType,
)
from modules.orders.exceptions import MissingPaymentReference
from modules.orders.models import Order, TimelineEntry
from modules.payments.gateway.memory import InMemoryGateway
from modules.refunds.models import RefundMethod, RefundRecord, RefundStatus
from shared.domain.exceptions import (
    Forbidden,
    InvalidState,
    TerminalState,
    ValidationError,
)

pytestmark = pytest.mark.unit


class TestExampleScenario:
    """Pay, seller reports a wait, buyer cancels, order is final."""

    def test_buyer_cancellation_after_wait_offer(
        self,
        verifier,
        make_cart,
        order_service,
        availability_service,
        buyer,
        seller,
    ):
        InMemoryGateway.register("TXN-1", amount=10_000)
        order, created = verifier.verify_and_create_order(
            reference="TXN-1",
            claimed_total=10_000,
            cart_items=make_cart(10_000),
            buyer=buyer,
        )
        assert created
        assert order.status == OrderStatus.PROCESSING

        order = availability_service.mark_not_available(
            order.id, seller, reason="Supplier delay", wait_time_days=3
        )
        assert order.status == OrderStatus.AVAILABILITY_CHECK
        timeline_before = TimelineEntry.objects.filter(order=order).count()

        order = availability_service.respond_to_availability(
            order.id, buyer, BuyerWaitResponse.CANCELLED
        )

        assert order.status == OrderStatus.CANCELLED
        refund = RefundRecord.objects.get(order=order)
        assert refund.amount == 10_000
        assert refund.status == RefundStatus.PENDING
        assert refund.payment_reference == "TXN-1"
        assert refund.refund_method == RefundMethod.ORIGINAL_PAYMENT
        assert TimelineEntry.objects.filter(order=order).count() == timeline_before + 1

        with pytest.raises(TerminalState):
            order_service.transition(order.id, OrderStatus.SENT, seller)


class TestMarkNotAvailable:
    @freeze_time("2026-03-02 10:00:00")
    def test_wait_offer_sets_expiry(self, place_order, availability_service, seller):
        order = place_order()

        updated = availability_service.mark_not_available(
            order.id, seller, reason="Restocking", wait_time_days=3
        )

        assert updated.availability_status == AvailabilityStatus.WAITING_BUYER_RESPONSE
        assert updated.wait_time_days == 3
        assert updated.wait_time_expires_at == timezone.now() + timedelta(days=3)
        entry = TimelineEntry.objects.filter(order=order).last()
        assert entry.sender_type == SenderType.SELLER
        assert "3 days" in entry.message

    def test_without_wait_marks_not_available(
        self, place_order, availability_service, seller
    ):
        order = place_order()

        updated = availability_service.mark_not_available(
            order.id, seller, reason="Discontinued"
        )

        assert updated.availability_status == AvailabilityStatus.NOT_AVAILABLE
        assert updated.wait_time_days is None
        assert updated.wait_time_expires_at is None

    def test_records_availability_event(self, place_order, availability_service, seller):
        order = place_order()

        availability_service.mark_not_available(order.id, seller, reason="Restocking")

        assert OutboxEvent.objects.filter(
            aggregate_id=str(order.id), event_type="AvailabilityReported"
        ).exists()

    @pytest.mark.parametrize("days", [0, 31, -1])
    def test_wait_time_out_of_range(self, days, place_order, availability_service, seller):
        order = place_order()

        with pytest.raises(ValidationError) as exc_info:
            availability_service.mark_not_available(
                order.id, seller, reason="Restocking", wait_time_days=days
            )

        assert exc_info.value.attr == "wait_time_days"
        assert Order.objects.get(pk=order.pk).status == OrderStatus.PROCESSING

    @pytest.mark.parametrize("days", [1, 30])
    def test_wait_time_bounds_inclusive(
        self, days, place_order, availability_service, seller
    ):
        order = place_order()

        updated = availability_service.mark_not_available(
            order.id, seller, reason="Restocking", wait_time_days=days
        )

        assert updated.wait_time_days == days

    def test_blank_reason_rejected(self, place_order, availability_service, seller):
        order = place_order()

        with pytest.raises(ValidationError):
            availability_service.mark_not_available(order.id, seller, reason="   ")

    def test_buyer_cannot_report(self, place_order, availability_service, buyer):
        order = place_order()

        with pytest.raises(Forbidden):
            availability_service.mark_not_available(order.id, buyer, reason="No")

    def test_only_from_processing(self, order_in, availability_service, seller):
        order = order_in(OrderStatus.SENT)

        with pytest.raises(InvalidState):
            availability_service.mark_not_available(order.id, seller, reason="Late")

    def test_terminal_order_rejected(self, order_in, availability_service, seller):
        order = order_in(OrderStatus.CANCELLED)

        with pytest.raises(TerminalState):
            availability_service.mark_not_available(order.id, seller, reason="Late")


class TestRespondToAvailability:
    def test_accept_keeps_order_open(self, order_in, availability_service, buyer):
        order = order_in(OrderStatus.AVAILABILITY_CHECK)

        updated = availability_service.respond_to_availability(
            order.id, buyer, BuyerWaitResponse.ACCEPTED
        )

        assert updated.status == OrderStatus.AVAILABILITY_CHECK
        assert updated.availability_status == AvailabilityStatus.WAITING_RESTOCK
        assert updated.buyer_wait_response == BuyerWaitResponse.ACCEPTED
        assert not RefundRecord.objects.filter(order=order).exists()

    def test_accept_twice_is_rejected(self, order_in, availability_service, buyer):
        order = order_in(OrderStatus.AVAILABILITY_CHECK)
        availability_service.respond_to_availability(
            order.id, buyer, BuyerWaitResponse.ACCEPTED
        )

        with pytest.raises(InvalidState):
            availability_service.respond_to_availability(
                order.id, buyer, BuyerWaitResponse.ACCEPTED
            )

    def test_accepted_wait_can_still_be_sent(
        self, order_in, availability_service, order_service, buyer, seller
    ):
        order = order_in(OrderStatus.AVAILABILITY_CHECK)
        availability_service.respond_to_availability(
            order.id, buyer, BuyerWaitResponse.ACCEPTED
        )

        updated = order_service.transition(order.id, OrderStatus.SENT, seller)

        assert updated.status == OrderStatus.SENT

    def test_seller_cannot_respond(self, order_in, availability_service, seller):
        order = order_in(OrderStatus.AVAILABILITY_CHECK)

        with pytest.raises(Forbidden):
            availability_service.respond_to_availability(
                order.id, seller, BuyerWaitResponse.CANCELLED
            )
        assert Order.objects.get(pk=order.pk).status == OrderStatus.AVAILABILITY_CHECK

    def test_requires_availability_check(self, place_order, availability_service, buyer):
        order = place_order()

        with pytest.raises(InvalidState):
            availability_service.respond_to_availability(
                order.id, buyer, BuyerWaitResponse.CANCELLED
            )

    def test_unknown_response(self, order_in, availability_service, buyer):
        order = order_in(OrderStatus.AVAILABILITY_CHECK)

        with pytest.raises(ValidationError):
            availability_service.respond_to_availability(order.id, buyer, "maybe")

    @pytest.mark.parametrize("already_refunded", [0, 500_000])
    def test_cancel_without_payment_reference_writes_nothing(
        self,
        already_refunded,
        order_in,
        availability_service,
        refund_service,
        buyer,
        seller,
    ):
        order = order_in(OrderStatus.AVAILABILITY_CHECK)
        if already_refunded:
            refund_service.issue_refund(
                order.id, seller, amount=already_refunded, reason="Out of stock"
            )
        Order.objects.filter(pk=order.pk).update(payment_reference=None)
        entries = TimelineEntry.objects.filter(order=order).count()
        refunds = RefundRecord.objects.filter(order=order).count()

        with pytest.raises(MissingPaymentReference):
            availability_service.respond_to_availability(
                order.id, buyer, BuyerWaitResponse.CANCELLED
            )

        stored = Order.objects.get(pk=order.pk)
        assert stored.status == OrderStatus.AVAILABILITY_CHECK
        assert stored.buyer_wait_response == ""
        assert TimelineEntry.objects.filter(order=order).count() == entries
        assert RefundRecord.objects.filter(order=order).count() == refunds
