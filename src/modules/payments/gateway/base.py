from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Protocol


@dataclass(frozen=True)
class GatewayTransaction:
    """What the gateway says about a transaction.

    ``amount`` is in minor units exactly as reported; it is never converted
    to a float.
    """

    reference: str
    success: bool
    status: str
    amount: int
    currency: str
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class IPaymentGateway(Protocol):
    name: str

    def verify_transaction(self, reference: str) -> GatewayTransaction:
        """Look a transaction up.

        Raises ``GatewayError`` on transport errors, timeouts and non-2xx
        answers.  Never retries.
        """
        ...
