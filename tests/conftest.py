from __future__ import annotations

import itertools

import pytest

from rest_framework.test import APIClient

from modules.core.actors import Actor, ActorRole
from modules.core.authentication import AUTH0_ROLE_CLAIM, Auth0User
from modules.core.commission import commission_rate_cache
from modules.orders.availability import AvailabilityService
from modules.orders.constants import OrderStatus
from modules.orders.disputes import DisputeService
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.payments.dtos import CartItemDTO
from modules.payments.gateway.memory import InMemoryGateway
from modules.payments.repositories.django_repository import (
    PaymentReservationDjangoRepository,
)
from modules.payments.services import PaymentVerificationService
from modules.refunds.repositories.django_repository import RefundDjangoRepository
from modules.refunds.services import RefundService

BUYER_ID = "buyer-1"
OTHER_BUYER_ID = "buyer-2"
SELLER_ID = "seller-1"
OTHER_SELLER_ID = "seller-2"
ADMIN_ID = "admin-1"

_references = itertools.count(1)


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _reset_gateway_and_caches():
    InMemoryGateway.reset()
    commission_rate_cache.invalidate()
    yield
    InMemoryGateway.reset()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture()
def buyer() -> Actor:
    return Actor(uid=BUYER_ID, role=ActorRole.BUYER)


@pytest.fixture()
def other_buyer() -> Actor:
    return Actor(uid=OTHER_BUYER_ID, role=ActorRole.BUYER)


@pytest.fixture()
def seller() -> Actor:
    return Actor(uid=SELLER_ID, role=ActorRole.SELLER)


@pytest.fixture()
def other_seller() -> Actor:
    return Actor(uid=OTHER_SELLER_ID, role=ActorRole.SELLER)


@pytest.fixture()
def admin() -> Actor:
    return Actor(uid=ADMIN_ID, role=ActorRole.ADMIN, is_admin=True)


@pytest.fixture()
def system() -> Actor:
    return Actor.system()


@pytest.fixture()
def client_for():
    """Build an APIClient authenticated as ``uid`` with ``role``."""

    def _build(uid: str, role: str = ActorRole.BUYER) -> APIClient:
        client = APIClient()
        user = Auth0User({"sub": uid, AUTH0_ROLE_CLAIM: role})
        client.force_authenticate(user=user)
        return client

    return _build


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def order_repository():
    return OrderDjangoRepository()


@pytest.fixture()
def refund_repository():
    return RefundDjangoRepository()


@pytest.fixture()
def reservation_repository():
    return PaymentReservationDjangoRepository()


@pytest.fixture()
def gateway():
    return InMemoryGateway()


@pytest.fixture()
def order_service(order_repository, refund_repository):
    return OrderService(order_repository, refund_repository)


@pytest.fixture()
def availability_service(order_repository, refund_repository):
    return AvailabilityService(order_repository, refund_repository)


@pytest.fixture()
def dispute_service(order_repository, refund_repository):
    return DisputeService(order_repository, refund_repository)


@pytest.fixture()
def refund_service(order_repository, refund_repository):
    return RefundService(order_repository, refund_repository)


@pytest.fixture()
def verifier(gateway, order_repository, reservation_repository):
    return PaymentVerificationService(
        gateway=gateway,
        order_repository=order_repository,
        reservation_repository=reservation_repository,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


def cart(total: int = 500_000, seller_id: str = SELLER_ID) -> list[CartItemDTO]:
    """Two-line cart for one seller summing to ``total`` minor units."""
    first = total // 2
    return [
        CartItemDTO(
            product_id="prod-1",
            seller_id=seller_id,
            name="Ankara fabric",
            unit_price=first,
            quantity=1,
        ),
        CartItemDTO(
            product_id="prod-2",
            seller_id=seller_id,
            name="Beaded necklace",
            unit_price=total - first,
            quantity=1,
        ),
    ]


@pytest.fixture()
def place_order(verifier, buyer):
    """Create an order through payment verification."""

    def _place(total: int = 500_000, actor=None, reference: str | None = None):
        reference = reference or f"ref-{next(_references):06d}"
        InMemoryGateway.register(reference, amount=total)
        order, created = verifier.verify_and_create_order(
            reference=reference,
            claimed_total=total,
            cart_items=cart(total),
            buyer=actor or buyer,
            delivery_info={"city": "Lagos"},
        )
        assert created
        return order

    return _place


@pytest.fixture()
def order_in(place_order, order_service, availability_service, buyer, seller, admin):
    """Create a paid order and drive it to ``status`` through the services."""

    def _in(status: str, total: int = 500_000):
        order = place_order(total=total)
        if status == OrderStatus.PROCESSING:
            return order
        if status == OrderStatus.AVAILABILITY_CHECK:
            return availability_service.mark_not_available(
                order.id, seller, reason="Out of stock", wait_time_days=3
            )
        if status == OrderStatus.CANCELLED:
            return order_service.transition(order.id, OrderStatus.CANCELLED, buyer)

        order = order_service.transition(order.id, OrderStatus.SENT, seller)
        if status == OrderStatus.SENT:
            return order
        if status == OrderStatus.DISPUTED:
            return order_service.transition(order.id, OrderStatus.DISPUTED, buyer)

        order = order_service.transition(order.id, OrderStatus.RECEIVED, buyer)
        if status == OrderStatus.RECEIVED:
            return order
        return order_service.transition(order.id, OrderStatus.COMPLETED, admin)

    return _in


@pytest.fixture()
def make_cart():
    return cart
