"""Async Shopify GraphQL order backfill with Redis concurrency control.

Re-reads orders for an attribution window from the Admin API and upserts
them into the Order Store, so promo attribution does not depend solely on
webhook delivery.
"""
import asyncio
import logging
import math
import random
import uuid
from typing import Collection, Optional

import aiohttp
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.asyncio.lock import Lock as AsyncRedisLock

from ..metrics.window import AttributionWindow
from ..schemas.records import Order, select_promo_code
from ..store.repository import AttributionStore
from .exceptions import (
    OrderPayloadError,
    ShopifyBackfillLockedError,
    ShopifyOrdersApiError,
    ShopifyOrdersGraphQLError,
)


QUERY_ORDERS_IN_WINDOW = """
query OrdersInWindow($query: String!, $cursor: String) {
  orders(first: 250, query: $query, after: $cursor) {
    pageInfo {
      hasNextPage
      endCursor
    }
    nodes {
      id
      name
      createdAt
      discountCodes
      totalPriceSet {
        shopMoney {
          amount
          currencyCode
        }
      }
    }
  }
}
"""


def _redact(text: str, token: str) -> str:
    if not text or not token:
        return text
    return text.replace(token, "[REDACTED]")


def order_from_graphql_node(
    node: dict, known_promo_codes: Optional[Collection[str]] = None
) -> Order:
    """Convert an Order GraphQL node into an Order.

    Args:
        node: Order node with id, createdAt, discountCodes, totalPriceSet
        known_promo_codes: Normalized campaign promo codes, preferred when
            the order carries several discount codes

    Returns:
        Order keyed by the numeric part of the order GID

    Raises:
        OrderPayloadError: If id/createdAt are missing or the price is malformed
    """
    gid = node.get("id")
    created_at = node.get("createdAt")
    if not gid or not created_at:
        raise OrderPayloadError("missing id or createdAt", gid)

    price_set = (node.get("totalPriceSet") or {}).get("shopMoney") or {}
    try:
        total_price = float(price_set.get("amount") or 0)
    except (TypeError, ValueError) as exc:
        raise OrderPayloadError(f"malformed amount {price_set.get('amount')!r}", gid) from exc

    promo_code = select_promo_code(node.get("discountCodes") or [], known_promo_codes)

    try:
        return Order(
            id=str(uuid.uuid4()),
            external_order_id=str(gid).rsplit("/", 1)[-1],
            total_price=total_price,
            currency=price_set.get("currencyCode"),
            promo_code=promo_code,
            occurred_at=created_at,
        )
    except ValidationError as exc:
        raise OrderPayloadError(f"{exc.error_count()} validation error(s)", gid) from exc


class ShopifyOrdersClient:
    """Async client for reading orders from the Shopify GraphQL Admin API.

    Enforces 1 concurrent backfill per shop via Redis locks.
    Retries 429/5xx/network errors with exponential backoff.
    """

    LOCK_TTL_SECONDS = 900  # 15 minutes

    MAX_RETRY_ATTEMPTS = 6
    RETRY_BASE_DELAY = 0.5  # seconds
    RETRY_MULTIPLIER = 2.0
    RETRY_MAX_DELAY = 30.0  # seconds
    RETRY_JITTER_MS = 250  # milliseconds

    def __init__(
        self,
        shop_domain: str,
        admin_access_token: str,
        api_version: str,
        session: aiohttp.ClientSession,
        redis: Redis,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize Shopify orders client.

        Args:
            shop_domain: e.g., "mystore.myshopify.com"
            admin_access_token: Offline access token (never logged)
            api_version: e.g., "2025-01"
            session: Injected aiohttp ClientSession
            redis: Injected redis.asyncio.Redis client
            logger: Optional logger instance
        """
        self.shop_domain = shop_domain
        self._access_token = admin_access_token
        self.api_version = api_version
        self.session = session
        self.redis = redis
        self.logger = logger or logging.getLogger(__name__)

        self.graphql_endpoint = (
            f"https://{shop_domain}/admin/api/{api_version}/graphql.json"
        )
        self._lock_key = f"influtrak:shopify:order_backfill:{shop_domain}"

    async def fetch_orders(
        self,
        window: AttributionWindow,
        known_promo_codes: Optional[Collection[str]] = None,
    ) -> list[Order]:
        """Fetch all orders created inside the window.

        Nodes that cannot be parsed are logged and skipped.

        Args:
            window: Attribution window
            known_promo_codes: Normalized campaign promo codes

        Returns:
            Orders in API order
        """
        query_filter = (
            f"created_at:>={window.start.isoformat()} "
            f"created_at:<={window.end.isoformat()}"
        )

        orders: list[Order] = []
        skipped = 0
        cursor = None

        while True:
            payload = {
                "query": QUERY_ORDERS_IN_WINDOW,
                "variables": {"query": query_filter, "cursor": cursor},
            }

            resp_data = await self._post_graphql(payload, retry=True)

            orders_data = (resp_data.get("data") or {}).get("orders")
            if orders_data is None:
                raise ShopifyOrdersApiError("GraphQL response missing data.orders")

            for node in orders_data.get("nodes", []):
                try:
                    orders.append(order_from_graphql_node(node, known_promo_codes))
                except OrderPayloadError as exc:
                    skipped += 1
                    self.logger.warning("Skipping order node: %s", exc)

            page_info = orders_data.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break

            cursor = page_info.get("endCursor")

        self.logger.info(
            "Fetched %s orders for shop=%s (%s skipped)",
            len(orders),
            self.shop_domain,
            skipped,
        )
        return orders

    async def backfill_orders(
        self, window: AttributionWindow, store: AttributionStore
    ) -> int:
        """Fetch orders for the window and upsert them into the store.

        Args:
            window: Attribution window
            store: Order Store to upsert into

        Returns:
            Number of orders upserted

        Raises:
            ShopifyBackfillLockedError: If another backfill holds the lock
            ShopifyOrdersApiError: For API errors
            ShopifyOrdersGraphQLError: If GraphQL returns errors
        """
        lock = AsyncRedisLock(
            self.redis,
            name=self._lock_key,
            timeout=self.LOCK_TTL_SECONDS,
            blocking=False,
        )

        acquired = await lock.acquire(blocking=False)
        if not acquired:
            raise ShopifyBackfillLockedError(self.shop_domain, self._lock_key)

        self.logger.info("Acquired backfill lock for shop=%s", self.shop_domain)

        try:
            orders = await self.fetch_orders(window, store.list_promo_codes())
            for order in orders:
                store.upsert_order(order)

            self.logger.info(
                "Backfilled %s orders for shop=%s", len(orders), self.shop_domain
            )
            return len(orders)

        finally:
            await self._release_lock_best_effort(lock)

    async def _post_graphql(self, payload: dict, retry: bool = True) -> dict:
        """Execute GraphQL POST with retry logic.

        Args:
            payload: GraphQL query payload
            retry: Whether to retry on transient errors

        Returns:
            Parsed JSON response data

        Raises:
            ShopifyOrdersApiError: On non-retryable errors or max retries exceeded
            ShopifyOrdersGraphQLError: On root-level GraphQL errors
        """
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self._access_token,
        }

        attempt = 0
        while True:
            attempt += 1

            try:
                timeout = aiohttp.ClientTimeout(total=60, connect=10)
                async with self.session.post(
                    self.graphql_endpoint,
                    json=payload,
                    headers=headers,
                    timeout=timeout,
                ) as resp:
                    response_text = _redact(await resp.text(), self._access_token)

                    if resp.status == 429 or 500 <= resp.status < 600:
                        if not retry or attempt > self.MAX_RETRY_ATTEMPTS:
                            raise ShopifyOrdersApiError(
                                f"HTTP {resp.status} after {attempt} attempts: "
                                f"{response_text[:200]}"
                            )

                        delay = self._retry_delay(
                            resp.status, resp.headers.get("Retry-After"), attempt
                        )

                        self.logger.warning(
                            "HTTP %s, backoff=%.2fs, attempt=%s",
                            resp.status,
                            delay,
                            attempt,
                        )
                        await asyncio.sleep(delay)
                        continue

                    if 400 <= resp.status < 500:
                        raise ShopifyOrdersApiError(
                            f"HTTP {resp.status} (non-retryable): {response_text[:500]}"
                        )

                    resp.raise_for_status()
                    json_data = await resp.json()

                    # Root-level errors come with a 200 and no usable data
                    if "errors" in json_data and json_data["errors"]:
                        error_messages = [
                            error.get("message", str(error))
                            for error in json_data["errors"]
                        ]
                        raise ShopifyOrdersGraphQLError(
                            f"GraphQL root errors: {'; '.join(error_messages)}"
                        )

                    return json_data

            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                if not retry or attempt > self.MAX_RETRY_ATTEMPTS:
                    raise ShopifyOrdersApiError(
                        f"Network error after {attempt} attempts: {exc}"
                    ) from exc

                delay = self._calculate_backoff(attempt)
                self.logger.warning(
                    "Network error: %s, backoff=%.2fs, attempt=%s", exc, delay, attempt
                )
                await asyncio.sleep(delay)

    def _retry_delay(
        self, status: int, retry_after: Optional[str], attempt: int
    ) -> float:
        """Seconds to wait before retrying a throttled or failed request.

        Only a numeric Retry-After on a 429 is honoured; HTTP-date or
        garbage values fall back to exponential backoff.
        """
        if status == 429 and retry_after:
            try:
                delay = float(retry_after)
            except ValueError:
                self.logger.debug("Ignoring non-numeric Retry-After %r", retry_after)
            else:
                if math.isfinite(delay) and delay >= 0:
                    return delay

        return self._calculate_backoff(attempt)

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with jitter.

        Args:
            attempt: Current retry attempt number (1-indexed)

        Returns:
            Delay in seconds
        """
        delay = min(
            self.RETRY_BASE_DELAY * (self.RETRY_MULTIPLIER ** (attempt - 1)),
            self.RETRY_MAX_DELAY,
        )
        jitter = random.uniform(0, self.RETRY_JITTER_MS / 1000.0)
        return delay + jitter

    async def _release_lock_best_effort(self, lock: AsyncRedisLock) -> None:
        """Release Redis lock, logging (not raising) release failures."""
        try:
            await lock.release()
            self.logger.info("Released backfill lock for shop=%s", self.shop_domain)
        except Exception as exc:
            self.logger.error("Failed to release backfill lock: %s", exc)
