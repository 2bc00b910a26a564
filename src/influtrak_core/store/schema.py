"""SQLite schema definitions for the attribution stores.

Database: data/influtrak.db (WAL mode)
Tables: influencers, campaigns, events, orders, rating_settings
"""
import logging
import sqlite3
from pathlib import Path


logger = logging.getLogger(__name__)


SCHEMA_VERSION = 1


def connect(db_path: str | Path) -> sqlite3.Connection:
    """Open a connection with WAL mode enabled.

    Args:
        db_path: Path to SQLite database file (or ":memory:")

    Returns:
        sqlite3.Connection usable across threads
    """
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_database(conn: sqlite3.Connection) -> None:
    """Initialize attribution database with schema.

    Creates tables if they don't exist.

    Args:
        conn: SQLite connection
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    cursor = conn.execute("SELECT MAX(version) FROM schema_version")
    current_version = cursor.fetchone()[0] or 0

    if current_version < SCHEMA_VERSION:
        _apply_schema(conn)
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()
        logger.info("Database schema initialized (version %s)", SCHEMA_VERSION)
    else:
        logger.debug("Database schema up to date (version %s)", current_version)


def _apply_schema(conn: sqlite3.Connection) -> None:
    """Apply database schema.

    Args:
        conn: SQLite connection (in transaction)
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS influencers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT,
            created_at TEXT NOT NULL
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS campaigns (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL DEFAULT '',
            influencer_id TEXT,
            slug_utm TEXT NOT NULL,
            promo_code TEXT,
            promo_code_normalized TEXT,
            target_type TEXT NOT NULL DEFAULT 'product',
            product_url TEXT,
            cost_fixed REAL NOT NULL DEFAULT 0,
            commission_percent REAL NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'active',
            created_at TEXT NOT NULL
        )
        """
    )

    conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_campaigns_promo_code
        ON campaigns(promo_code_normalized)
        WHERE promo_code_normalized IS NOT NULL
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS events (
            id TEXT PRIMARY KEY,
            utm_campaign TEXT,
            event_type TEXT NOT NULL,
            session_id TEXT NOT NULL DEFAULT '',
            revenue REAL NOT NULL DEFAULT 0,
            payload_json TEXT NOT NULL DEFAULT '{}',
            occurred_at TEXT NOT NULL
        )
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_events_occurred
        ON events(occurred_at)
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS orders (
            id TEXT PRIMARY KEY,
            shopify_order_id TEXT NOT NULL UNIQUE,
            total_price REAL NOT NULL DEFAULT 0,
            currency TEXT,
            promo_code TEXT,
            occurred_at TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_orders_occurred
        ON orders(occurred_at)
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS rating_settings (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            star1_min REAL NOT NULL,
            star1_max REAL NOT NULL,
            star2_min REAL NOT NULL,
            star2_max REAL NOT NULL,
            star3_min REAL NOT NULL,
            loss_text TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
