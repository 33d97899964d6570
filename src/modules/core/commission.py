"""Platform commission rate with a process-wide TTL cache.

The rate is loaded on first use and refreshed once the entry is older than
``ttl_seconds``.  The clock is injected so tests can move time forward
without sleeping.
"""

from __future__ import annotations

import threading
import time
from decimal import Decimal
from typing import Callable, Optional

import structlog
from django.conf import settings

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]
Loader = Callable[[], Decimal]


def load_commission_rate() -> Decimal:
    """Read the current rate from ``PlatformSettings`` or fall back to settings."""
    from modules.core.models import PlatformSettings

    row = PlatformSettings.objects.order_by("-updated_at").first()
    if row is None:
        return Decimal(str(settings.DEFAULT_COMMISSION_RATE))
    return row.commission_rate


class CommissionRateCache:
    def __init__(
        self,
        loader: Loader = load_commission_rate,
        ttl_seconds: Optional[float] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = (
            ttl_seconds
            if ttl_seconds is not None
            else settings.COMMISSION_RATE_TTL_SECONDS
        )
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Optional[Decimal] = None
        self._loaded_at: float = 0.0

    def get(self) -> Decimal:
        with self._lock:
            now = self._clock()
            if self._value is None or now - self._loaded_at >= self._ttl:
                self._value = self._loader()
                self._loaded_at = now
                logger.info("commission_rate.refreshed", rate=str(self._value))
            return self._value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None


commission_rate_cache = CommissionRateCache()
