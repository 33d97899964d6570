"""Paystack transaction verification over ``requests``."""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

import requests
import structlog
from django.conf import settings

from modules.payments.exceptions import GatewayError
from modules.payments.gateway.base import GatewayTransaction

logger = structlog.get_logger(__name__)


class PaystackGateway:
    name = "paystack"

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.secret_key = secret_key or settings.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT
        self.session = session or requests.Session()

    def verify_transaction(self, reference: str) -> GatewayTransaction:
        ref = (reference or "").strip()
        if not self.secret_key:
            raise GatewayError("Paystack secret key is not configured.")
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        url = f"{self.base_url}/transaction/verify/{quote(ref, safe='')}"
        log = logger.bind(gateway=self.name, reference=ref)

        try:
            r = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.Timeout as exc:
            log.warning("payment.gateway_timeout", timeout=self.timeout)
            raise GatewayError(
                "Payment gateway timed out.", reference=ref, timeout=self.timeout
            ) from exc
        except requests.RequestException as exc:
            log.warning("payment.gateway_unreachable", error=str(exc))
            raise GatewayError("Payment gateway is unreachable.", reference=ref) from exc

        try:
            j = r.json() if r.content else {}
        except ValueError:
            j = {}
        if r.status_code < 200 or r.status_code >= 300 or j.get("status") is not True:
            msg = (j.get("message") or f"HTTP {r.status_code}").strip()
            log.warning("payment.gateway_error", status_code=r.status_code, message=msg)
            raise GatewayError(
                f"Payment gateway rejected the verification: {msg}",
                reference=ref,
                status_code=r.status_code,
            )

        data = j.get("data") or {}
        status = (data.get("status") or "").strip().lower()
        amount = data.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise GatewayError(
                "Payment gateway returned a malformed amount.",
                reference=ref,
                amount=str(amount),
            )
        return GatewayTransaction(
            reference=(data.get("reference") or ref).strip(),
            success=status == "success",
            status=status,
            amount=amount,
            currency=(data.get("currency") or "").strip().upper(),
            raw=j,
        )
