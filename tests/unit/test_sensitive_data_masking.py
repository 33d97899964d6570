import pytest

from config.settings import mask_sensitive_data

pytestmark = pytest.mark.unit


class TestSensitiveDataMasking:
    def test_card_number_masked(self):
        event_dict = {"event": "test", "data": "card 4084 0840 8408 4081 declined"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "4084 0840 8408 4081" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_gateway_secret_key_masked(self):
        event_dict = {"event": "test", "header": "Bearer sk_live_9f8e7d6c5b4a"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "sk_live_9f8e7d6c5b4a" not in result["header"]

    def test_password_masked(self):
        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_token_masked(self):
        event_dict = {"event": "test", "header": "token=abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "abc123xyz" not in result["header"]
        assert "***MASKED***" in result["header"]

    def test_order_identifiers_unchanged(self):
        event_dict = {
            "event": "order.created",
            "order_number": "ORD-20260301-A1B2C3",
            "reference": "TXN-1",
        }
        result = mask_sensitive_data(None, None, event_dict)
        assert result["order_number"] == "ORD-20260301-A1B2C3"
        assert result["reference"] == "TXN-1"
        assert result["event"] == "order.created"
