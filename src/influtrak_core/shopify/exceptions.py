"""Custom exceptions for the Shopify order integration."""


class ShopifyOrdersClientError(Exception):
    """Base exception for all Shopify order integration errors."""


class ShopifyBackfillLockedError(ShopifyOrdersClientError):
    """Raised when Redis lock cannot be acquired (another backfill in progress)."""

    def __init__(self, shop_domain: str, lock_key: str):
        self.shop_domain = shop_domain
        self.lock_key = lock_key
        super().__init__(
            f"Order backfill lock already held for shop={shop_domain}, key={lock_key}"
        )


class ShopifyOrdersApiError(ShopifyOrdersClientError):
    """Raised for Shopify API errors (HTTP 4xx/5xx, missing data)."""


class ShopifyOrdersGraphQLError(ShopifyOrdersClientError):
    """Raised when GraphQL returns root-level errors."""


class ShopifyWebhookVerificationError(ShopifyOrdersClientError):
    """Raised when a webhook HMAC signature is missing or does not match."""


class OrderPayloadError(ShopifyOrdersClientError):
    """Raised when an order payload cannot be parsed into an Order."""

    def __init__(self, reason: str, order_id: object = None):
        self.reason = reason
        self.order_id = order_id
        super().__init__(f"Invalid order payload (id={order_id}): {reason}")
