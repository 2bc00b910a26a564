#!/usr/bin/env python3
"""CLI entry point for Shopify order backfill.

Usage:
    # Backfill yesterday and today
    PYTHONPATH=. python scripts/run_order_backfill.py

    # Backfill a window
    PYTHONPATH=. python scripts/run_order_backfill.py --from 2024-12-01 --to 2024-12-07
"""
import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import aiohttp
from redis.asyncio import Redis

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.influtrak_core.metrics.window import AttributionWindow, normalize_window
from src.influtrak_core.shopify.orders_client import ShopifyOrdersClient
from src.influtrak_core.store.repository import AttributionStore
from src.influtrak_core.store.schema import connect, init_database


logger = logging.getLogger("run_order_backfill")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def run_backfill(window: AttributionWindow) -> int:
    """Backfill orders for the window using environment configuration."""
    shop_domain = os.getenv("SHOPIFY_STORE_DOMAIN")
    access_token = os.getenv("SHOPIFY_ADMIN_ACCESS_TOKEN")
    api_version = os.getenv("SHOPIFY_API_VERSION", "2025-01")
    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379")
    db_path = os.getenv("INFLUTRAK_DB_PATH", "data/influtrak.db")

    if not shop_domain or not access_token:
        raise RuntimeError(
            "SHOPIFY_STORE_DOMAIN and SHOPIFY_ADMIN_ACCESS_TOKEN must be set"
        )

    db_conn = connect(db_path)
    init_database(db_conn)

    try:
        timeout = aiohttp.ClientTimeout(total=300, connect=30)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            redis = Redis.from_url(redis_url, decode_responses=False)
            try:
                client = ShopifyOrdersClient(
                    shop_domain=shop_domain,
                    admin_access_token=access_token,
                    api_version=api_version,
                    session=session,
                    redis=redis,
                )
                return await client.backfill_orders(window, AttributionStore(db_conn))
            finally:
                await redis.aclose()
    finally:
        db_conn.close()


async def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="InfluTrak Shopify order backfill")
    parser.add_argument(
        "--from",
        dest="raw_from",
        type=str,
        help="Window start (ISO-8601). Defaults to yesterday 00:00 UTC.",
    )
    parser.add_argument(
        "--to",
        dest="raw_to",
        type=str,
        help="Window end (ISO-8601, date-only covers the day). Defaults to now.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)

    raw_from = args.raw_from
    if raw_from is None:
        yesterday = datetime.now(timezone.utc).date() - timedelta(days=1)
        raw_from = yesterday.isoformat()

    window = normalize_window(raw_from, args.raw_to)
    count = await run_backfill(window)

    logger.info(
        "Backfill complete: %s orders (%s..%s)",
        count,
        window.start.isoformat(),
        window.end.isoformat(),
    )


if __name__ == "__main__":
    asyncio.run(main())
