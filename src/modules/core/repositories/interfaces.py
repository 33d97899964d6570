"""Generic repository contract shared by the order and refund ledgers.

Service code depends on these abstractions, never on the ORM.  Every
mutation in the engine happens on a row locked with ``get_for_update``
inside the caller's transaction.  There is no ``delete``: orders, refund
rows and timeline entries are never removed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, Protocol, TypeVar

from django.db import models

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class Queryable(Protocol[T_co]):
    def filter(self, **kwargs: Any) -> models.QuerySet: ...


class IRepository(ABC, Generic[T]):
    @abstractmethod
    def create(self, data: Dict[str, Any]) -> T:
        """Insert a new entity built from ``data``."""

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Return the entity, or ``None`` for unknown or malformed ids."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[T]:
        """Like ``get_by_id`` but holds a row lock until commit."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Queryable[T]:
        """Entities matching ORM-style ``filters``."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist changes to an existing entity."""
