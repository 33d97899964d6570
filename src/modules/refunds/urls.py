"""Refund URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.refunds.views import RefundViewSet

router = DefaultRouter(trailing_slash=True)
router.register("refunds", RefundViewSet, basename="refund")

urlpatterns = router.urls
