"""Concurrent writers against a real database.

SQLite serializes writers on the whole file and ignores
``select_for_update``, so these run only against PostgreSQL.
"""

import threading
import time
from uuid import uuid4

import pytest
from django.db import connection

from modules.core.models import EventStatus, OutboxEvent
from modules.core.outbox import OutboxDispatcher, serialize_event_payload
from modules.orders.constants import OrderStatus
from modules.orders.events import OrderCreated
from modules.orders.models import Order
from modules.payments.gateway.memory import InMemoryGateway
from modules.payments.models import PaymentReservation
from shared.domain.exceptions import DomainError
from shared.infrastructure.bus import InMemoryEventBus

pytestmark = [
    pytest.mark.integration,
    pytest.mark.django_db(transaction=True),
    pytest.mark.skipif(
        connection.vendor == "sqlite", reason="requires row-level locking"
    ),
]


def _race(workers):
    barrier = threading.Barrier(len(workers))
    outcomes = []

    def run(work):
        barrier.wait()
        try:
            outcomes.append(("ok", work()))
        except DomainError as exc:
            outcomes.append(("error", exc.code))
        finally:
            connection.close()

    threads = [threading.Thread(target=run, args=(work,)) for work in workers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return outcomes


def test_one_of_two_concurrent_transitions_wins(place_order, order_service, seller):
    order = place_order()

    outcomes = _race(
        [lambda: order_service.transition(order.id, OrderStatus.SENT, seller)] * 2
    )

    assert sorted(kind for kind, _ in outcomes) == ["error", "ok"]
    assert {value for kind, value in outcomes if kind == "error"} <= {
        "invalid_transition",
        "concurrent_update",
    }
    assert Order.objects.get(pk=order.pk).version == order.version + 1


def test_concurrent_verification_creates_one_order(verifier, buyer, make_cart):
    InMemoryGateway.register("TXN-RACE", amount=500_000)

    def verify():
        order, created = verifier.verify_and_create_order(
            reference="TXN-RACE",
            claimed_total=500_000,
            cart_items=make_cart(500_000),
            buyer=buyer,
        )
        return order.id, created

    outcomes = _race([verify] * 3)

    assert all(kind == "ok" for kind, _ in outcomes)
    assert len({value[0] for _, value in outcomes}) == 1
    assert sum(value[1] for _, value in outcomes) == 1
    assert Order.objects.count() == 1
    assert PaymentReservation.objects.count() == 1


def test_concurrent_dispatchers_deliver_each_row_once():
    bus = InMemoryEventBus()
    delivered = []

    class Slow:
        def handle(self, event) -> None:
            time.sleep(0.05)
            delivered.append(event.aggregate_id)

    bus.subscribe(OrderCreated, Slow())
    for _ in range(4):
        event = OrderCreated(aggregate_id=uuid4())
        OutboxEvent.objects.create(
            event_type=event.event_name,
            aggregate_id=str(event.aggregate_id),
            payload=serialize_event_payload(event),
            topic="orders",
        )

    outcomes = _race([OutboxDispatcher(bus=bus).dispatch_pending] * 2)

    assert sum(result["published"] for _, result in outcomes) == 4
    assert len(delivered) == len(set(delivered)) == 4
    assert not OutboxEvent.objects.exclude(status=EventStatus.PUBLISHED).exists()
