"""Unit tests for Shopify webhook verification and parsing."""
import base64
import hashlib
import hmac
from datetime import datetime, timezone

import pytest

from src.influtrak_core.shopify.exceptions import (
    OrderPayloadError,
    ShopifyWebhookVerificationError,
)
from src.influtrak_core.shopify.webhooks import (
    parse_order_webhook,
    require_valid_webhook,
    verify_webhook_hmac,
)


SECRET = "shpss_test_secret"


def _sign(body: bytes, secret: str = SECRET) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def test_verify_webhook_hmac_accepts_valid_signature():
    """A signature computed over the raw body verifies."""
    body = b'{"id": 820982911946154508}'

    assert verify_webhook_hmac(body, _sign(body), SECRET)


def test_verify_webhook_hmac_rejects_tampering():
    """Changing the body or the secret breaks the signature."""
    body = b'{"id": 1}'
    signature = _sign(body)

    assert not verify_webhook_hmac(b'{"id": 2}', signature, SECRET)
    assert not verify_webhook_hmac(body, _sign(body, "other"), SECRET)
    assert not verify_webhook_hmac(body, None, SECRET)


def test_require_valid_webhook_raises():
    """Missing or wrong signatures raise ShopifyWebhookVerificationError."""
    with pytest.raises(ShopifyWebhookVerificationError, match="Missing"):
        require_valid_webhook(b"{}", None, SECRET)

    with pytest.raises(ShopifyWebhookVerificationError, match="mismatch"):
        require_valid_webhook(b"{}", "bm9wZQ==", SECRET)


def test_parse_order_webhook_takes_first_discount_code():
    """The first discount code becomes the order promo code."""
    payload = {
        "id": 820982911946154508,
        "created_at": "2024-12-03T11:00:00+01:00",
        "total_price": "199.00",
        "currency": "EUR",
        "discount_codes": [
            {"code": "SUMMER20", "amount": "20.00", "type": "percentage"},
            {"code": "FREESHIP", "amount": "5.00", "type": "shipping"},
        ],
    }

    order = parse_order_webhook(payload)

    assert order.external_order_id == "820982911946154508"
    assert order.total_price == 199.0
    assert order.promo_code == "SUMMER20"
    assert order.occurred_at == datetime(2024, 12, 3, 10, tzinfo=timezone.utc)


def test_parse_order_webhook_without_discount_codes():
    """Orders without codes carry no promo code."""
    order = parse_order_webhook(
        {"id": "1001", "created_at": "2024-12-03T10:00:00Z", "total_price": "10.00"}
    )

    assert order.promo_code is None
    assert order.currency is None


def test_parse_order_webhook_rejects_missing_fields():
    """Payloads without id or created_at are rejected."""
    with pytest.raises(OrderPayloadError) as exc_info:
        parse_order_webhook({"id": 42, "total_price": "10.00"})

    assert exc_info.value.order_id == 42


def test_parse_order_webhook_rejects_negative_total():
    """Negative totals are not valid orders."""
    with pytest.raises(OrderPayloadError):
        parse_order_webhook(
            {"id": 1, "created_at": "2024-12-03T10:00:00Z", "total_price": "-1"}
        )


def test_parse_order_webhook_prefers_campaign_code():
    """A registered campaign code wins over a generic code applied first."""
    payload = {
        "id": 1002,
        "created_at": "2024-12-03T10:00:00Z",
        "total_price": "45.00",
        "discount_codes": [{"code": "WELCOME5"}, {"code": " Summer20 "}],
    }

    matched = parse_order_webhook(payload, known_promo_codes={"summer20"})
    unmatched = parse_order_webhook(payload, known_promo_codes={"winter10"})

    assert matched.promo_code == " Summer20 "
    assert matched.normalized_promo_code == "summer20"
    assert unmatched.promo_code == "WELCOME5"


def test_parse_order_webhook_rejects_infinite_total():
    """Non-finite totals are not valid orders."""
    with pytest.raises(OrderPayloadError):
        parse_order_webhook(
            {"id": 1, "created_at": "2024-12-03T10:00:00Z", "total_price": "Infinity"}
        )
