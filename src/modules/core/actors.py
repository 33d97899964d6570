"""Actor identity passed to every service-layer operation.

The engine trusts the identity produced by the authentication layer
completely; it never reads roles from request payloads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from django.db import models


class ActorRole(models.TextChoices):
    BUYER = "buyer", "Buyer"
    SELLER = "seller", "Seller"
    ADMIN = "admin", "Admin"
    SYSTEM = "system", "System"


@dataclass(frozen=True)
class Actor:
    uid: str
    role: str = ActorRole.BUYER
    is_admin: bool = False

    @property
    def is_system(self) -> bool:
        return self.role == ActorRole.SYSTEM

    @classmethod
    def system(cls) -> Actor:
        return cls(uid="system", role=ActorRole.SYSTEM)

    @classmethod
    def from_user(cls, user: Any) -> Actor:
        """Build an actor from ``request.user``.

        Supports ``Auth0User`` (claims carry ``role``/``is_admin``) and
        Django users authenticated through SimpleJWT (staff users are
        administrators).
        """
        uid = getattr(user, "uid", None) or getattr(user, "sub", None) or str(user.pk)
        is_admin = bool(
            getattr(user, "is_admin", False) or getattr(user, "is_staff", False)
        )
        role = getattr(user, "role", None) or (
            ActorRole.ADMIN if is_admin else ActorRole.BUYER
        )
        return cls(uid=str(uid), role=str(role), is_admin=is_admin or role == ActorRole.ADMIN)
