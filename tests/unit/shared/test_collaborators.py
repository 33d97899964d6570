"""Unit tests for the pluggable notification and payout collaborators."""

from __future__ import annotations

from unittest.mock import Mock
from uuid import uuid4

import pytest
import requests

from shared.infrastructure import collaborators
from shared.infrastructure.collaborators import (
    HttpPayoutLedger,
    LoggingPayoutLedger,
    get_payout_ledger,
)

pytestmark = pytest.mark.unit

LEDGER_URL = "https://earnings.internal/hooks/payout"


@pytest.fixture()
def post(monkeypatch):
    post = Mock(return_value=Mock(status_code=202))
    monkeypatch.setattr(collaborators.requests, "post", post)
    return post


class TestHttpPayoutLedger:
    def test_posts_delivery_signal(self, post):
        order_id = uuid4()

        HttpPayoutLedger(url=LEDGER_URL, timeout=2.5).on_order_delivered(order_id)

        post.assert_called_once_with(
            LEDGER_URL,
            json={"order_id": str(order_id), "event": "order_delivered"},
            timeout=2.5,
        )
        post.return_value.raise_for_status.assert_called_once_with()

    def test_http_error_propagates(self, post):
        post.return_value.raise_for_status.side_effect = requests.HTTPError(
            "503 Server Error"
        )

        with pytest.raises(requests.HTTPError):
            HttpPayoutLedger(url=LEDGER_URL).on_order_delivered(uuid4())

    def test_connection_error_propagates(self, post):
        post.side_effect = requests.ConnectionError("earnings service unreachable")

        with pytest.raises(requests.ConnectionError):
            HttpPayoutLedger(url=LEDGER_URL).on_order_delivered(uuid4())

    def test_defaults_come_from_settings(self, settings):
        settings.PAYOUT_LEDGER_URL = LEDGER_URL
        settings.PAYMENT_GATEWAY_TIMEOUT = 7.0

        ledger = HttpPayoutLedger()

        assert ledger.url == LEDGER_URL
        assert ledger.timeout == 7.0


class TestLedgerSelection:
    def test_selected_by_dotted_path(self, settings):
        settings.PAYOUT_LEDGER = "shared.infrastructure.collaborators.HttpPayoutLedger"
        settings.PAYOUT_LEDGER_URL = LEDGER_URL

        assert isinstance(get_payout_ledger(), HttpPayoutLedger)

    def test_logging_ledger_by_default(self, settings):
        settings.PAYOUT_LEDGER = "shared.infrastructure.collaborators.LoggingPayoutLedger"

        assert isinstance(get_payout_ledger(), LoggingPayoutLedger)
