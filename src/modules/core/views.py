"""Operational endpoints: liveness/readiness and caller identity."""

import time
from typing import Any, Callable, Dict

import structlog
from django.core.cache import cache
from django.db import connection
from django.db.models import Count, Min
from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.actors import Actor
from modules.core.models import OutboxEvent

logger = structlog.get_logger(__name__)


def _timed(probe: Callable[[], None]) -> Dict[str, Any]:
    start = time.monotonic()
    probe()
    return {
        "status": "up",
        "response_time_ms": round((time.monotonic() - start) * 1000, 2),
    }


def _probe_database() -> None:
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()


def _probe_cache() -> None:
    cache.set("_health_check", "ok", 10)
    if cache.get("_health_check") != "ok":
        raise ConnectionError("cache read-back mismatch")


def _outbox_backlog() -> Dict[str, Any]:
    backlog = OutboxEvent.objects.backlog().aggregate(
        pending=Count("id"), oldest=Min("created_at")
    )
    oldest = backlog["oldest"]
    return {
        "status": "up",
        "pending_events": backlog["pending"],
        "oldest_pending_seconds": (
            round((timezone.now() - oldest).total_seconds()) if oldest else None
        ),
    }


def health_check(request: HttpRequest) -> JsonResponse:
    """GET /health

    Database and cache decide the overall status; the outbox backlog is
    informational so a slow dispatcher never takes the API out of rotation.
    """
    services: Dict[str, Dict[str, Any]] = {}
    for name, probe in (("database", _probe_database), ("cache", _probe_cache)):
        try:
            services[name] = _timed(probe)
        except Exception as exc:
            services[name] = {"status": "down"}
            logger.error("health_check.probe_failed", service=name, error=str(exc))

    healthy = all(service["status"] == "up" for service in services.values())
    if services["database"]["status"] == "up":
        services["outbox"] = _outbox_backlog()

    status = "healthy" if healthy else "unhealthy"
    logger.info("health_check.completed", status=status)
    return JsonResponse(
        {"status": status, "timestamp": timezone.now().isoformat(), "services": services},
        status=200 if healthy else 503,
    )


class WhoAmIView(APIView):
    """GET /api/v1/me: the actor the engine derives from the caller's token."""

    permission_classes = [IsAuthenticated]

    def get(self, request: HttpRequest) -> Response:
        actor = Actor.from_user(request.user)
        return Response(
            {
                "message": "authenticated",
                "uid": actor.uid,
                "role": actor.role,
                "is_admin": actor.is_admin,
            }
        )
