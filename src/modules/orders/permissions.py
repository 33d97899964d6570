"""Actor authorization relative to a specific order."""

from __future__ import annotations

from typing import AbstractSet

from modules.core.actors import Actor
from modules.orders.constants import SenderType
from modules.orders.models import Order
from shared.domain.exceptions import Forbidden


def ensure_role(
    order: Order, actor: Actor, allowed: AbstractSet[str], action: str
) -> set[str]:
    """Return the actor's roles on ``order`` or raise ``Forbidden``."""
    held = order.roles_of(actor)
    if held & allowed:
        return held
    raise Forbidden(
        f"Only {' or '.join(sorted(allowed))} may {action}.",
        action=action,
        required_roles=sorted(allowed),
        actor_role=actor.role,
        actor_roles=sorted(held),
    )


def sender_type_for(order: Order, actor: Actor) -> str:
    if actor.uid == order.customer_id:
        return SenderType.BUYER
    if actor.uid == order.seller_id:
        return SenderType.SELLER
    return SenderType.SYSTEM
