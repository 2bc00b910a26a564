"""Shopify integration modules."""
from .exceptions import (
    OrderPayloadError,
    ShopifyBackfillLockedError,
    ShopifyOrdersApiError,
    ShopifyOrdersClientError,
    ShopifyOrdersGraphQLError,
    ShopifyWebhookVerificationError,
)
from .orders_client import ShopifyOrdersClient
from .webhooks import parse_order_webhook, verify_webhook_hmac

__all__ = [
    "ShopifyOrdersClient",
    "ShopifyOrdersClientError",
    "ShopifyBackfillLockedError",
    "ShopifyOrdersApiError",
    "ShopifyOrdersGraphQLError",
    "ShopifyWebhookVerificationError",
    "OrderPayloadError",
    "parse_order_webhook",
    "verify_webhook_hmac",
]
