"""Shopify orders/create webhook verification and parsing.

The webhook body is loosely typed JSON. It is verified against the raw bytes
first, then parsed into a typed Order before it reaches the Order Store.
"""
import base64
import hashlib
import hmac
import logging
import uuid
from datetime import datetime
from typing import Any, Collection, Optional

from pydantic import BaseModel, Field, ValidationError

from ..schemas.records import Order, select_promo_code
from .exceptions import OrderPayloadError, ShopifyWebhookVerificationError


logger = logging.getLogger(__name__)


def verify_webhook_hmac(raw_body: bytes, hmac_header: Optional[str], secret: str) -> bool:
    """Check X-Shopify-Hmac-Sha256 against the raw request body.

    Args:
        raw_body: Request body bytes, before JSON parsing
        hmac_header: Base64 HMAC-SHA256 digest sent by Shopify
        secret: App API secret

    Returns:
        True if the signature matches
    """
    if not hmac_header:
        return False

    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    computed = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(computed, hmac_header)


def require_valid_webhook(
    raw_body: bytes, hmac_header: Optional[str], secret: str
) -> None:
    """Raise ShopifyWebhookVerificationError unless the signature matches."""
    if not hmac_header:
        raise ShopifyWebhookVerificationError("Missing X-Shopify-Hmac-Sha256 header")

    if not verify_webhook_hmac(raw_body, hmac_header, secret):
        raise ShopifyWebhookVerificationError("Webhook signature mismatch")


class ShopifyDiscountCode(BaseModel):
    code: str
    amount: Optional[str] = None
    type: Optional[str] = None


class ShopifyOrderWebhook(BaseModel):
    """Subset of the Shopify REST order payload used for attribution."""

    id: int | str
    created_at: datetime
    total_price: float = Field(0.0, ge=0, allow_inf_nan=False)
    currency: Optional[str] = None
    discount_codes: list[ShopifyDiscountCode] = Field(default_factory=list)

    def promo_code(self, known_codes: Optional[Collection[str]] = None) -> Optional[str]:
        return select_promo_code(
            (discount.code for discount in self.discount_codes), known_codes
        )


def parse_order_webhook(
    payload: dict[str, Any], known_promo_codes: Optional[Collection[str]] = None
) -> Order:
    """Parse an orders/create webhook body into an Order.

    The first discount code that belongs to a campaign becomes the order's
    promo code; otherwise the first non-blank code is kept.

    Args:
        payload: Decoded webhook JSON
        known_promo_codes: Normalized promo codes of registered campaigns

    Returns:
        Order with a fresh row id

    Raises:
        OrderPayloadError: If required fields are missing or malformed
    """
    try:
        webhook = ShopifyOrderWebhook.model_validate(payload)
    except ValidationError as exc:
        raise OrderPayloadError(
            f"{exc.error_count()} validation error(s): {exc.errors()[0]['msg']}",
            payload.get("id") if isinstance(payload, dict) else None,
        ) from exc

    promo_code = webhook.promo_code(known_promo_codes)

    if len(webhook.discount_codes) > 1:
        logger.info(
            "Order %s has %s discount codes, attributing to %r",
            webhook.id,
            len(webhook.discount_codes),
            promo_code,
        )

    return Order(
        id=str(uuid.uuid4()),
        external_order_id=str(webhook.id),
        total_price=webhook.total_price,
        currency=webhook.currency,
        promo_code=promo_code,
        occurred_at=webhook.created_at,
    )
