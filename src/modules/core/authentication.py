"""Bearer-token authentication for identities issued by Auth0.

Tokens are RS256-signed; signing keys come from the tenant's JWKS endpoint
through a cached ``PyJWKClient``.  Requests whose token was not issued by
the configured tenant fall through to SimpleJWT (local users).

The engine only ever sees an ``Actor``.  This module decides which role a
token may claim: ``buyer``, ``seller`` or ``admin``.  The ``system`` role is
reserved for work the engine does on its own and is never accepted from a
token.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

import jwt as pyjwt
import structlog
from decouple import config
from jwt import PyJWKClient
from jwt.exceptions import PyJWTError
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

from modules.core.actors import ActorRole

logger = structlog.get_logger(__name__)

AUTH0_ROLE_CLAIM = config("AUTH0_ROLE_CLAIM", default="https://orders.api/role")
AUTH0_ADMIN_PERMISSION = config("AUTH0_ADMIN_PERMISSION", default="admin:orders")

TOKEN_ROLES = frozenset({ActorRole.BUYER, ActorRole.SELLER, ActorRole.ADMIN})


@dataclass(frozen=True)
class Auth0Tenant:
    domain: str
    audience: str
    algorithm: str = "RS256"

    @property
    def issuer(self) -> str:
        return f"https://{self.domain}/"

    @property
    def jwks_url(self) -> str:
        return f"{self.issuer}.well-known/jwks.json"


@lru_cache(maxsize=1)
def get_tenant() -> Optional[Auth0Tenant]:
    """The configured tenant, or ``None`` when Auth0 is disabled."""
    domain = config("AUTH0_DOMAIN", default="")
    audience = config("AUTH0_AUDIENCE", default="")
    if not (domain and audience):
        return None
    return Auth0Tenant(
        domain=domain,
        audience=audience,
        algorithm=config("AUTH0_ALGORITHM", default="RS256"),
    )


@lru_cache(maxsize=1)
def _jwks_client(jwks_url: str) -> PyJWKClient:
    return PyJWKClient(jwks_url, cache_jwk_set=True, lifespan=300)


def role_from_claims(payload: Dict[str, Any]) -> str:
    claimed = payload.get(AUTH0_ROLE_CLAIM) or ActorRole.BUYER
    if claimed in TOKEN_ROLES:
        return claimed
    logger.warning("auth.unsupported_role_claim", sub=payload.get("sub"), role=claimed)
    return ActorRole.BUYER


class Auth0User:
    """Request user for an Auth0 identity; no local ``User`` row exists.

    ``Actor.from_user`` reads ``uid``, ``role`` and ``is_admin``.
    """

    is_authenticated = True
    is_active = True

    def __init__(self, payload: Dict[str, Any]):
        self.payload = payload
        self.sub: str = payload.get("sub", "")
        self.permissions: list[str] = payload.get("permissions", [])
        self.role: str = role_from_claims(payload)
        self.is_admin: bool = (
            self.role == ActorRole.ADMIN or AUTH0_ADMIN_PERMISSION in self.permissions
        )

    @property
    def uid(self) -> str:
        return self.sub

    def __str__(self) -> str:
        return self.sub


class Auth0JSONWebTokenAuthentication(BaseAuthentication):
    keyword = "Bearer"

    def authenticate(self, request) -> Optional[Tuple[Auth0User, str]]:
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None

        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != self.keyword.lower():
            raise AuthenticationFailed("Invalid Authorization header format.")
        token = parts[1]

        tenant = get_tenant()
        if tenant is None or _unverified_issuer(token) != tenant.issuer:
            return None

        user = Auth0User(_decode(token, tenant))
        logger.info("auth.token_accepted", sub=user.sub, role=user.role)
        return user, token

    def authenticate_header(self, request) -> str:
        return f'{self.keyword} realm="api"'


def _unverified_issuer(token: str) -> Optional[str]:
    # Only used to route the token; the signature is checked in _decode.
    try:
        claims = pyjwt.decode(token, options={"verify_signature": False})
    except PyJWTError:
        return None
    return claims.get("iss")


def _decode(token: str, tenant: Auth0Tenant) -> Dict[str, Any]:
    try:
        signing_key = _jwks_client(tenant.jwks_url).get_signing_key_from_jwt(token)
        return pyjwt.decode(
            token,
            signing_key.key,
            algorithms=[tenant.algorithm],
            audience=tenant.audience,
            issuer=tenant.issuer,
        )
    except PyJWTError as exc:
        logger.warning("auth.token_rejected", error=str(exc))
        raise AuthenticationFailed(f"Token validation failed: {exc}") from exc
