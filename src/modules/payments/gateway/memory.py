"""In-process gateway for local development and tests.

Transactions live in a class-level registry so every instance created by
``get_payment_gateway()`` sees the same data.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from modules.payments.exceptions import GatewayError
from modules.payments.gateway.base import GatewayTransaction


class InMemoryGateway:
    name = "memory"

    _transactions: Dict[str, GatewayTransaction] = {}
    _failures: Dict[str, GatewayError] = {}
    calls: List[str] = []

    @classmethod
    def register(
        cls,
        reference: str,
        amount: int,
        status: str = "success",
        currency: str = "NGN",
    ) -> GatewayTransaction:
        txn = GatewayTransaction(
            reference=reference,
            success=status == "success",
            status=status,
            amount=amount,
            currency=currency,
        )
        cls._transactions[reference] = txn
        cls._failures.pop(reference, None)
        return txn

    @classmethod
    def fail(cls, reference: str, error: Optional[GatewayError] = None) -> None:
        cls._failures[reference] = error or GatewayError(
            "Payment gateway timed out.", reference=reference
        )

    @classmethod
    def reset(cls) -> None:
        cls._transactions.clear()
        cls._failures.clear()
        cls.calls.clear()

    def verify_transaction(self, reference: str) -> GatewayTransaction:
        self.calls.append(reference)
        if reference in self._failures:
            raise self._failures[reference]
        try:
            return self._transactions[reference]
        except KeyError:
            raise GatewayError(
                "Transaction reference not found.", reference=reference, status_code=404
            ) from None
