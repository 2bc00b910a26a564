"""SQLite-backed storage reader/writer for the attribution engine.

Reads return typed records. Writes follow the store lifecycles:
- events: append-only
- orders: upsert by Shopify order id (last write wins)
- campaigns: upsert by id, promo codes unique after normalization
"""
import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..metrics.exceptions import DuplicatePromoCodeError
from ..metrics.rating import RatingThresholds
from ..metrics.window import AttributionWindow
from ..schemas.records import (
    Campaign,
    CampaignStatus,
    Event,
    EventType,
    Influencer,
    Order,
    TargetType,
    ensure_utc,
    normalize_promo_code,
)


logger = logging.getLogger(__name__)


def to_db_timestamp(value: datetime) -> str:
    """Fixed-width UTC timestamp so string order matches time order."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def from_db_timestamp(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value))


_CAMPAIGN_COLUMNS = """id, name, influencer_id, slug_utm, promo_code, target_type,
                   product_url, cost_fixed, commission_percent, status, created_at"""


def _campaign_from_row(row: tuple) -> Campaign:
    return Campaign(
        id=row[0],
        name=row[1],
        influencer_id=row[2],
        slug=row[3],
        promo_code=row[4],
        target_type=TargetType(row[5]),
        product_url=row[6],
        fixed_cost=row[7],
        commission_percent=row[8],
        status=CampaignStatus(row[9]),
        created_at=from_db_timestamp(row[10]),
    )


@dataclass(frozen=True)
class AttributionSnapshot:
    """Consistent read of every store for one window."""

    window: AttributionWindow
    campaigns: list[Campaign]
    influencers: list[Influencer]
    events: list[Event]
    orders: list[Order]
    thresholds: RatingThresholds


class AttributionStore:
    """Storage collaborator over a single SQLite connection."""

    def __init__(self, db_conn: sqlite3.Connection) -> None:
        """Initialize store.

        Args:
            db_conn: SQLite connection with schema applied
        """
        self.db_conn = db_conn

    # Reads

    def list_events_in_window(
        self, window: AttributionWindow, campaign_slug: Optional[str] = None
    ) -> list[Event]:
        """List events inside the window, optionally for one UTM slug."""
        query = """
            SELECT id, utm_campaign, event_type, session_id, revenue,
                   payload_json, occurred_at
            FROM events
            WHERE occurred_at >= ? AND occurred_at <= ?
        """
        params: list = [to_db_timestamp(window.start), to_db_timestamp(window.end)]

        if campaign_slug is not None:
            query += " AND utm_campaign = ?"
            params.append(campaign_slug)

        cursor = self.db_conn.execute(query + " ORDER BY occurred_at, id", params)
        return [
            Event(
                id=row[0],
                campaign_slug=row[1],
                event_type=EventType(row[2]),
                session_id=row[3],
                revenue=row[4],
                raw_payload=json.loads(row[5]),
                occurred_at=from_db_timestamp(row[6]),
            )
            for row in cursor.fetchall()
        ]

    def list_orders_in_window(self, window: AttributionWindow) -> list[Order]:
        cursor = self.db_conn.execute(
            """
            SELECT id, shopify_order_id, total_price, currency, promo_code, occurred_at
            FROM orders
            WHERE occurred_at >= ? AND occurred_at <= ?
            ORDER BY occurred_at, id
            """,
            (to_db_timestamp(window.start), to_db_timestamp(window.end)),
        )
        return [
            Order(
                id=row[0],
                external_order_id=row[1],
                total_price=row[2],
                currency=row[3],
                promo_code=row[4],
                occurred_at=from_db_timestamp(row[5]),
            )
            for row in cursor.fetchall()
        ]

    def list_campaigns(self) -> list[Campaign]:
        cursor = self.db_conn.execute(
            f"""
            SELECT {_CAMPAIGN_COLUMNS}
            FROM campaigns
            ORDER BY created_at, id
            """
        )
        return [_campaign_from_row(row) for row in cursor.fetchall()]

    def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        cursor = self.db_conn.execute(
            f"SELECT {_CAMPAIGN_COLUMNS} FROM campaigns WHERE id = ?",
            (campaign_id,),
        )
        row = cursor.fetchone()
        return _campaign_from_row(row) if row else None

    def list_promo_codes(self) -> set[str]:
        """Normalized promo codes owned by registered campaigns."""
        cursor = self.db_conn.execute(
            """
            SELECT promo_code_normalized
            FROM campaigns
            WHERE promo_code_normalized IS NOT NULL
            """
        )
        return {row[0] for row in cursor.fetchall()}

    def list_influencers(self) -> list[Influencer]:
        cursor = self.db_conn.execute(
            """
            SELECT id, name, email, created_at
            FROM influencers
            ORDER BY created_at, id
            """
        )
        return [
            Influencer(
                id=row[0],
                name=row[1],
                email=row[2],
                created_at=from_db_timestamp(row[3]),
            )
            for row in cursor.fetchall()
        ]

    def get_rating_thresholds(self) -> RatingThresholds:
        """Return the global rating settings, or defaults if never saved."""
        cursor = self.db_conn.execute(
            """
            SELECT star1_min, star1_max, star2_min, star2_max, star3_min, loss_text
            FROM rating_settings
            WHERE id = 1
            """
        )
        row = cursor.fetchone()

        if row is None:
            return RatingThresholds()

        return RatingThresholds(
            star1_min=row[0],
            star1_max=row[1],
            star2_min=row[2],
            star2_max=row[3],
            star3_min=row[4],
            loss_text=row[5],
        )

    def load_snapshot(self, window: AttributionWindow) -> AttributionSnapshot:
        """Read every store inside one read transaction.

        Args:
            window: Attribution window used to pre-filter events and orders

        Returns:
            AttributionSnapshot
        """
        self.db_conn.execute("BEGIN")
        try:
            snapshot = AttributionSnapshot(
                window=window,
                campaigns=self.list_campaigns(),
                influencers=self.list_influencers(),
                events=self.list_events_in_window(window),
                orders=self.list_orders_in_window(window),
                thresholds=self.get_rating_thresholds(),
            )
        finally:
            self.db_conn.rollback()

        logger.debug(
            "Loaded snapshot: %s campaigns, %s events, %s orders",
            len(snapshot.campaigns),
            len(snapshot.events),
            len(snapshot.orders),
        )
        return snapshot

    # Writes

    def record_event(self, event: Event) -> None:
        self.db_conn.execute(
            """
            INSERT INTO events (
                id, utm_campaign, event_type, session_id, revenue,
                payload_json, occurred_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.campaign_slug,
                event.event_type.value,
                event.session_id,
                event.revenue,
                json.dumps(event.raw_payload, separators=(",", ":"), default=str),
                to_db_timestamp(event.occurred_at),
            ),
        )
        self.db_conn.commit()

    def upsert_order(self, order: Order) -> None:
        """Insert or update an order keyed by its Shopify order id.

        The stored row id is kept on update; price, currency, promo code and
        timestamp take the latest values.
        """
        self.db_conn.execute(
            """
            INSERT INTO orders (
                id, shopify_order_id, total_price, currency, promo_code, occurred_at
            )
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(shopify_order_id)
            DO UPDATE SET
                total_price=excluded.total_price,
                currency=excluded.currency,
                promo_code=excluded.promo_code,
                occurred_at=excluded.occurred_at,
                updated_at=CURRENT_TIMESTAMP
            """,
            (
                order.id,
                order.external_order_id,
                order.total_price,
                order.currency,
                order.promo_code,
                to_db_timestamp(order.occurred_at),
            ),
        )
        self.db_conn.commit()

    def _promo_code_owner(self, normalized_code: str) -> Optional[str]:
        cursor = self.db_conn.execute(
            "SELECT id FROM campaigns WHERE promo_code_normalized=?",
            (normalized_code,),
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def save_campaign(self, campaign: Campaign) -> None:
        """Insert or update a campaign.

        Raises:
            DuplicatePromoCodeError: If another campaign owns the promo code
        """
        normalized_code = normalize_promo_code(campaign.promo_code)

        if normalized_code is not None:
            owner = self._promo_code_owner(normalized_code)
            if owner is not None and owner != campaign.id:
                raise DuplicatePromoCodeError(normalized_code, owner)

        created_at = campaign.created_at or datetime.now(timezone.utc)

        try:
            self.db_conn.execute(
                """
                INSERT INTO campaigns (
                    id, name, influencer_id, slug_utm, promo_code,
                    promo_code_normalized, target_type, product_url,
                    cost_fixed, commission_percent, status, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id)
                DO UPDATE SET
                    name=excluded.name,
                    influencer_id=excluded.influencer_id,
                    slug_utm=excluded.slug_utm,
                    promo_code=excluded.promo_code,
                    promo_code_normalized=excluded.promo_code_normalized,
                    target_type=excluded.target_type,
                    product_url=excluded.product_url,
                    cost_fixed=excluded.cost_fixed,
                    commission_percent=excluded.commission_percent,
                    status=excluded.status
                """,
                (
                    campaign.id,
                    campaign.name,
                    campaign.influencer_id,
                    campaign.slug,
                    campaign.promo_code,
                    normalized_code,
                    campaign.target_type.value,
                    campaign.product_url,
                    campaign.fixed_cost,
                    campaign.commission_percent,
                    campaign.status.value,
                    to_db_timestamp(created_at),
                ),
            )
            self.db_conn.commit()
        except sqlite3.IntegrityError as exc:
            self.db_conn.rollback()
            owner = self._promo_code_owner(normalized_code) if normalized_code else None
            if owner is not None:
                raise DuplicatePromoCodeError(normalized_code, owner) from exc
            raise

    def save_influencer(self, influencer: Influencer) -> None:
        created_at = influencer.created_at or datetime.now(timezone.utc)
        self.db_conn.execute(
            """
            INSERT INTO influencers (id, name, email, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id)
            DO UPDATE SET name=excluded.name, email=excluded.email
            """,
            (influencer.id, influencer.name, influencer.email, to_db_timestamp(created_at)),
        )
        self.db_conn.commit()

    def save_rating_thresholds(self, thresholds: RatingThresholds) -> None:
        self.db_conn.execute(
            """
            INSERT INTO rating_settings (
                id, star1_min, star1_max, star2_min, star2_max, star3_min, loss_text
            )
            VALUES (1, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id)
            DO UPDATE SET
                star1_min=excluded.star1_min,
                star1_max=excluded.star1_max,
                star2_min=excluded.star2_min,
                star2_max=excluded.star2_max,
                star3_min=excluded.star3_min,
                loss_text=excluded.loss_text,
                updated_at=CURRENT_TIMESTAMP
            """,
            (
                thresholds.star1_min,
                thresholds.star1_max,
                thresholds.star2_min,
                thresholds.star2_max,
                thresholds.star3_min,
                thresholds.loss_text,
            ),
        )
        self.db_conn.commit()
        logger.info("Rating thresholds updated")
