"""Integration tests for the order endpoints."""

import uuid

import pytest

from modules.core.actors import ActorRole
from modules.orders.constants import OrderStatus
from modules.refunds.models import RefundRecord

pytestmark = pytest.mark.integration


@pytest.fixture()
def buyer_client(client_for):
    return client_for("buyer-1")


@pytest.fixture()
def seller_client(client_for):
    return client_for("seller-1", ActorRole.SELLER)


@pytest.fixture()
def admin_client(client_for):
    return client_for("admin-1", ActorRole.ADMIN)


def _url(order, suffix=""):
    return f"/api/v1/orders/{order.id}/{suffix}"


class TestListOrders:
    def test_buyer_sees_only_own_orders(self, place_order, other_buyer, buyer_client):
        mine = place_order()
        place_order(actor=other_buyer)

        data = buyer_client.get("/api/v1/orders/").json()

        assert data["count"] == 1
        assert data["results"][0]["id"] == str(mine.id)

    def test_seller_sees_orders_they_sell(self, place_order, seller_client, client_for):
        place_order()
        place_order()

        assert seller_client.get("/api/v1/orders/").json()["count"] == 2
        stranger = client_for("seller-2", ActorRole.SELLER)
        assert stranger.get("/api/v1/orders/").json()["count"] == 0

    def test_admin_sees_everything(self, place_order, other_buyer, admin_client):
        place_order()
        place_order(actor=other_buyer)

        assert admin_client.get("/api/v1/orders/").json()["count"] == 2

    def test_pagination(self, place_order, buyer_client):
        for _ in range(3):
            place_order()

        data = buyer_client.get("/api/v1/orders/?page_size=2").json()

        assert data["count"] == 3
        assert len(data["results"]) == 2
        assert data["next"] is not None

    def test_filter_by_status(self, order_in, buyer_client):
        order_in(OrderStatus.PROCESSING)
        sent = order_in(OrderStatus.SENT)

        data = buyer_client.get("/api/v1/orders/?status=sent").json()

        assert [row["id"] for row in data["results"]] == [str(sent.id)]

    def test_filter_by_total_range(self, place_order, buyer_client):
        place_order(total=10_000)
        big = place_order(total=900_000)

        data = buyer_client.get("/api/v1/orders/?min_total=100000").json()

        assert [row["id"] for row in data["results"]] == [str(big.id)]

    def test_newest_first(self, place_order, buyer_client):
        first = place_order()
        second = place_order()

        ids = [row["id"] for row in buyer_client.get("/api/v1/orders/").json()["results"]]

        assert ids == [str(second.id), str(first.id)]


class TestRetrieveOrder:
    def test_buyer_reads_own_order(self, place_order, buyer_client):
        order = place_order()

        response = buyer_client.get(_url(order))

        assert response.status_code == 200
        assert response.json()["order_number"] == order.order_number

    def test_stranger_is_forbidden(self, place_order, client_for):
        order = place_order()

        response = client_for("buyer-2").get(_url(order))

        assert response.status_code == 403
        assert response.json()["errors"][0]["code"] == "forbidden"

    def test_unknown_order(self, buyer_client):
        response = buyer_client.get(f"/api/v1/orders/{uuid.uuid4()}/")
        assert response.status_code == 404


class TestTransitionEndpoint:
    def test_seller_ships(self, place_order, seller_client):
        order = place_order()

        response = seller_client.post(
            _url(order, "transition/"),
            {"status": OrderStatus.SENT, "extra": {"waybill_park_name": "Jibowu Park"}},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.SENT
        assert data["fulfillment"]["waybill_park_name"] == "Jibowu Park"
        assert data["version"] == order.version + 1

    def test_buyer_cannot_ship(self, place_order, buyer_client):
        order = place_order()

        response = buyer_client.post(
            _url(order, "transition/"), {"status": OrderStatus.SENT}, format="json"
        )

        assert response.status_code == 403
        meta = response.json()["errors"][0]["meta"]
        assert meta["actor_role"] == ActorRole.BUYER
        assert "seller" in meta["required_roles"]

    def test_terminal_state_conflict(self, order_in, admin_client):
        order = order_in(OrderStatus.COMPLETED)

        response = admin_client.post(
            _url(order, "transition/"), {"status": OrderStatus.SENT}, format="json"
        )

        assert response.status_code == 409
        error = response.json()["errors"][0]
        assert error["code"] == "terminal_state"
        assert error["meta"]["current_status"] == OrderStatus.COMPLETED

    def test_unknown_status_value(self, place_order, seller_client):
        order = place_order()

        response = seller_client.post(
            _url(order, "transition/"), {"status": "Shipped"}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "status"

    def test_buyer_cancel_records_refund(self, place_order, buyer_client):
        order = place_order(total=20_000)

        response = buyer_client.post(
            _url(order, "transition/"), {"status": OrderStatus.CANCELLED}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["refunded_amount"] == 20_000
        refund = RefundRecord.objects.get(order_id=order.id)
        assert refund.amount == 20_000


class TestAvailabilityEndpoints:
    def test_seller_reports_then_buyer_accepts(
        self, place_order, seller_client, buyer_client
    ):
        order = place_order()

        reported = seller_client.post(
            _url(order, "availability/"),
            {"reason": "Out of stock", "wait_time_days": 3},
            format="json",
        )
        assert reported.status_code == 200
        assert reported.json()["status"] == OrderStatus.AVAILABILITY_CHECK
        assert reported.json()["wait_time_expires_at"] is not None

        accepted = buyer_client.post(
            _url(order, "availability-response/"), {"response": "accepted"}, format="json"
        )
        assert accepted.status_code == 200
        assert accepted.json()["buyer_wait_response"] == "accepted"
        assert accepted.json()["availability_status"] == "waiting_restock"

    def test_wait_time_out_of_range(self, place_order, seller_client):
        order = place_order()

        response = seller_client.post(
            _url(order, "availability/"),
            {"reason": "Out of stock", "wait_time_days": 31},
            format="json",
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "wait_time_days"

    def test_buyer_cancels_with_full_refund(self, order_in, buyer_client):
        order = order_in(OrderStatus.AVAILABILITY_CHECK, total=40_000)

        response = buyer_client.post(
            _url(order, "availability-response/"), {"response": "cancelled"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.CANCELLED
        assert response.json()["refunded_amount"] == 40_000


class TestDisputeEndpoints:
    def test_open_and_resolve_for_customer(self, order_in, buyer_client, admin_client):
        order = order_in(OrderStatus.SENT, total=30_000)

        opened = buyer_client.post(
            _url(order, "dispute/"),
            {"type": "item_not_received", "description": "Nothing arrived after ten days."},
            format="json",
        )
        assert opened.status_code == 200
        assert opened.json()["status"] == OrderStatus.DISPUTED
        assert opened.json()["dispute"]["status"] == "open"

        resolved = admin_client.post(
            _url(order, "dispute-resolution/"),
            {"resolution": "favor_customer", "notes": "Courier lost the parcel."},
            format="json",
        )
        assert resolved.status_code == 200
        assert resolved.json()["status"] == OrderStatus.CANCELLED
        assert resolved.json()["refunded_amount"] == 30_000

    def test_short_description_rejected(self, order_in, buyer_client):
        order = order_in(OrderStatus.SENT)

        response = buyer_client.post(
            _url(order, "dispute/"),
            {"type": "wrong_item", "description": "bad"},
            format="json",
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "description"

    def test_only_admin_resolves(self, order_in, seller_client):
        order = order_in(OrderStatus.DISPUTED)

        response = seller_client.post(
            _url(order, "dispute-resolution/"), {"resolution": "favor_seller"}, format="json"
        )

        assert response.status_code == 403


class TestTimelineEndpoint:
    def test_timeline_in_order(self, order_in, buyer_client):
        order = order_in(OrderStatus.RECEIVED)

        entries = buyer_client.get(_url(order, "timeline/")).json()

        assert [e["new_status"] for e in entries] == [
            OrderStatus.PROCESSING,
            OrderStatus.SENT,
            OrderStatus.RECEIVED,
        ]
        assert entries[0]["sender_type"] == "system"

    def test_stranger_cannot_read_timeline(self, place_order, client_for):
        order = place_order()

        response = client_for("seller-2", ActorRole.SELLER).get(_url(order, "timeline/"))

        assert response.status_code == 403
