"""Pydantic models for attribution source records.

Events, orders, campaigns and influencers are validated here, before they
reach the attribution engine. Timestamps are always normalized to UTC.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Collection, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Slug the tracking pixel sends when a visitor arrived without a tracked link
UNKNOWN_SLUG = "unknown"


def ensure_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_promo_code(code: Optional[str]) -> Optional[str]:
    """Trim and lowercase a promo code. Blank codes become None."""
    if code is None:
        return None
    normalized = code.strip().lower()
    return normalized or None


def select_promo_code(
    codes: Iterable[Optional[str]], known_codes: Optional[Collection[str]] = None
) -> Optional[str]:
    """Pick the discount code an order is attributed to.

    The first code owned by a campaign wins (known_codes holds normalized
    campaign codes). Without a match, the first non-blank code is kept.

    Args:
        codes: Discount codes in the order they were applied, raw
        known_codes: Normalized promo codes of registered campaigns

    Returns:
        Raw code, or None if the order has no usable code
    """
    candidates = [code for code in codes if normalize_promo_code(code) is not None]
    if not candidates:
        return None

    if known_codes:
        for code in candidates:
            if normalize_promo_code(code) in known_codes:
                return code

    return candidates[0]


class EventType(str, Enum):
    """Tracking pixel event types.

    checkout_started is stored for the funnel but never attributed.
    """

    PAGE_VIEW = "page_view"
    PRODUCT_VIEW = "product_view"
    ADD_TO_CART = "add_to_cart"
    CHECKOUT_STARTED = "checkout_started"
    PURCHASE = "purchase"


class CampaignStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class TargetType(str, Enum):
    HOMEPAGE = "homepage"
    PRODUCT = "product"


class Event(BaseModel):
    """Tracking pixel occurrence (append-only)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Event identifier")
    campaign_slug: Optional[str] = Field(
        None, description="utm_campaign captured by the pixel (exact match key)"
    )
    event_type: EventType
    session_id: str = Field("", description="Pixel session identifier")
    revenue: float = Field(
        0.0, ge=0, allow_inf_nan=False, description="Order value, purchase events only"
    )
    occurred_at: datetime
    raw_payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("campaign_slug")
    @classmethod
    def _blank_slug_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value

    @field_validator("occurred_at")
    @classmethod
    def _occurred_at_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def is_attributable(self) -> bool:
        """True when the event carries a slug that can match a campaign."""
        return self.campaign_slug is not None and self.campaign_slug != UNKNOWN_SLUG


class Order(BaseModel):
    """Completed commerce order, upserted by external order id."""

    model_config = ConfigDict(frozen=True)

    id: str
    external_order_id: str = Field(..., min_length=1, description="Shopify order id")
    total_price: float = Field(0.0, ge=0, allow_inf_nan=False)
    currency: Optional[str] = None
    promo_code: Optional[str] = Field(None, description="Discount code used, raw")
    occurred_at: datetime

    @field_validator("occurred_at")
    @classmethod
    def _occurred_at_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def normalized_promo_code(self) -> Optional[str]:
        return normalize_promo_code(self.promo_code)


class Campaign(BaseModel):
    """Campaign registry entry (snapshot read by the engine)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    influencer_id: Optional[str] = None
    slug: str = Field(..., min_length=1, description="UTM slug, case-sensitive")
    promo_code: Optional[str] = None
    target_type: TargetType = TargetType.PRODUCT
    product_url: Optional[str] = None
    fixed_cost: float = Field(0.0, ge=0, allow_inf_nan=False)
    commission_percent: float = Field(0.0, ge=0, le=100, allow_inf_nan=False)
    status: CampaignStatus = CampaignStatus.ACTIVE
    created_at: Optional[datetime] = None

    @property
    def normalized_promo_code(self) -> Optional[str]:
        return normalize_promo_code(self.promo_code)


class Influencer(BaseModel):
    """Influencer referenced by campaigns."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: Optional[str] = None
    created_at: Optional[datetime] = None
