"""Order state machine: transition table, terminal finality, role checks.

Every (current, requested) pair is exercised against the service layer.
Pairs outside the table must be rejected before any write, whatever the
actor; allowed pairs must succeed exactly for the roles listed.
"""

from __future__ import annotations

import itertools

import pytest

from modules.core.actors import ActorRole
from modules.orders.constants import (
    TERMINAL_STATES,
    TRANSITION_ROLES,
    VALID_TRANSITIONS,
    OrderStatus,
)
from modules.orders.models import Order, TimelineEntry
from shared.domain.exceptions import (
    Forbidden,
    InvalidTransition,
    TerminalState,
    ValidationError,
)

pytestmark = pytest.mark.unit

STATUSES = list(OrderStatus.values)

ILLEGAL_PAIRS = [
    (current, requested)
    for current, requested in itertools.product(STATUSES, STATUSES)
    if requested not in VALID_TRANSITIONS[current]
]

ACTOR_FIXTURES = {
    "buyer": ActorRole.BUYER,
    "seller": ActorRole.SELLER,
    "admin": ActorRole.ADMIN,
    "system": ActorRole.SYSTEM,
    "other_buyer": None,
}


def _extra_for(requested: str):
    if requested == OrderStatus.AVAILABILITY_CHECK:
        return {"reason": "Out of stock", "wait_time_days": 2}
    return None


class TestTransitionTable:
    def test_every_status_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(STATUSES)

    def test_terminal_states_have_no_exits(self):
        for status in TERMINAL_STATES:
            assert VALID_TRANSITIONS[status] == set()

    def test_every_allowed_pair_has_roles(self):
        allowed = {
            (current, requested)
            for current, targets in VALID_TRANSITIONS.items()
            for requested in targets
        }
        assert allowed == set(TRANSITION_ROLES)

    def test_processing_does_not_reach_received_directly(self):
        assert OrderStatus.RECEIVED not in VALID_TRANSITIONS[OrderStatus.PROCESSING]


class TestIllegalTransitions:
    @pytest.mark.parametrize("current,requested", ILLEGAL_PAIRS)
    def test_illegal_pair_is_rejected_without_writes(
        self, current, requested, order_in, order_service, admin
    ):
        order = order_in(current)
        version = Order.objects.get(pk=order.pk).version
        timeline_count = TimelineEntry.objects.filter(order=order).count()

        expected = TerminalState if current in TERMINAL_STATES else InvalidTransition
        with pytest.raises(expected) as exc_info:
            order_service.transition(
                order.id, requested, admin, extra=_extra_for(requested)
            )

        assert exc_info.value.details["current_status"] == current
        assert exc_info.value.details["requested_status"] == requested
        stored = Order.objects.get(pk=order.pk)
        assert stored.status == current
        assert stored.version == version
        assert TimelineEntry.objects.filter(order=order).count() == timeline_count

    def test_terminal_check_precedes_role_check(self, order_in, order_service, other_buyer):
        order = order_in(OrderStatus.COMPLETED)

        with pytest.raises(TerminalState):
            order_service.transition(order.id, OrderStatus.SENT, other_buyer)

    def test_table_check_precedes_role_check(self, order_in, order_service, other_buyer):
        order = order_in(OrderStatus.PROCESSING)

        with pytest.raises(InvalidTransition) as exc_info:
            order_service.transition(order.id, OrderStatus.RECEIVED, other_buyer)

        assert not isinstance(exc_info.value, Forbidden)

    def test_unknown_status_is_a_validation_error(self, order_in, order_service, admin):
        order = order_in(OrderStatus.PROCESSING)

        with pytest.raises(ValidationError):
            order_service.transition(order.id, "Shipped", admin)


class TestTransitionRoles:
    @pytest.mark.parametrize(
        "pair,actor_name",
        list(itertools.product(sorted(TRANSITION_ROLES), sorted(ACTOR_FIXTURES))),
    )
    def test_roles_match_table(self, pair, actor_name, order_in, order_service, request):
        current, requested = pair
        actor = request.getfixturevalue(actor_name)
        order = order_in(current)
        role = ACTOR_FIXTURES[actor_name]
        allowed = role is not None and role in TRANSITION_ROLES[pair]

        if allowed:
            updated = order_service.transition(
                order.id, requested, actor, extra=_extra_for(requested)
            )
            assert updated.status == requested
            assert Order.objects.get(pk=order.pk).status == requested
        else:
            with pytest.raises(Forbidden) as exc_info:
                order_service.transition(
                    order.id, requested, actor, extra=_extra_for(requested)
                )
            assert exc_info.value.details["actor_role"] == actor.role
            assert sorted(TRANSITION_ROLES[pair]) == exc_info.value.details[
                "required_roles"
            ]
            assert Order.objects.get(pk=order.pk).status == current

    def test_other_seller_cannot_send(self, order_in, order_service, other_seller):
        order = order_in(OrderStatus.PROCESSING)

        with pytest.raises(Forbidden):
            order_service.transition(order.id, OrderStatus.SENT, other_seller)

    def test_full_happy_path(self, place_order, order_service, buyer, seller, system):
        order = place_order()

        order_service.transition(order.id, OrderStatus.SENT, seller)
        order_service.transition(order.id, OrderStatus.RECEIVED, buyer)
        order = order_service.transition(order.id, OrderStatus.COMPLETED, system)

        assert order.status == OrderStatus.COMPLETED
        statuses = list(
            TimelineEntry.objects.filter(order=order)
            .exclude(new_status="")
            .values_list("new_status", flat=True)
        )
        assert statuses == [
            OrderStatus.PROCESSING,
            OrderStatus.SENT,
            OrderStatus.RECEIVED,
            OrderStatus.COMPLETED,
        ]
