"""Multi-signal campaign attribution.

Signals joined to each campaign:
- UTM: tracking pixel events whose slug equals the campaign slug (exact)
- Promo: orders whose promo code equals the campaign promo code
  (trimmed, case-insensitive)

UTM revenue and promo revenue are reported side by side and never summed:
a purchase can close through both paths, so merging would double count.
The caller picks a revenue basis when it needs cost or ROAS.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from ..schemas.records import (
    Campaign,
    CampaignStatus,
    Event,
    EventType,
    Influencer,
    Order,
)
from .exceptions import MissingCampaignReferenceError
from .window import AttributionWindow


logger = logging.getLogger(__name__)


CLICK_EVENT_TYPES = frozenset({EventType.PAGE_VIEW, EventType.PRODUCT_VIEW})


class RevenueBasis(str, Enum):
    """Which revenue total drives commission, cost and ROAS."""

    UTM = "utm"
    PROMO = "promo"


def commission_cost(revenue: float, commission_percent: float) -> float:
    return revenue * (commission_percent / 100)


def total_cost(revenue: float, fixed_cost: float, commission_percent: float) -> float:
    return fixed_cost + commission_cost(revenue, commission_percent)


def roas(revenue: float, cost: float) -> float:
    """Return on ad spend: revenue / cost, 0 when there is no cost."""
    return revenue / cost if cost > 0 else 0.0


def roi_percent(revenue: float, cost: float) -> float:
    """Profit over cost in percent, 0 when there is no cost."""
    return (revenue - cost) / cost * 100 if cost > 0 else 0.0


@dataclass(frozen=True)
class CampaignView:
    """Campaign metrics flattened for one revenue basis."""

    basis: RevenueBasis
    revenue: float
    orders: int
    commission_cost: float
    total_cost: float
    roas: float
    roi_percent: float
    conversion_rate: float


@dataclass(frozen=True)
class CampaignMetrics:
    """Attribution totals for one campaign over one window."""

    campaign_id: str
    campaign_name: str
    slug: str
    promo_code: Optional[str]
    influencer_id: Optional[str]
    status: CampaignStatus
    fixed_cost: float
    commission_percent: float
    clicks: int = 0
    add_to_carts: int = 0
    orders_utm: int = 0
    revenue_utm: float = 0.0
    orders_promo: int = 0
    revenue_promo: float = 0.0
    error: Optional[str] = None

    def revenue(self, basis: RevenueBasis) -> float:
        return self.revenue_utm if basis == RevenueBasis.UTM else self.revenue_promo

    def orders(self, basis: RevenueBasis) -> int:
        return self.orders_utm if basis == RevenueBasis.UTM else self.orders_promo

    def commission_cost(self, basis: RevenueBasis) -> float:
        return commission_cost(self.revenue(basis), self.commission_percent)

    def total_cost(self, basis: RevenueBasis) -> float:
        return total_cost(self.revenue(basis), self.fixed_cost, self.commission_percent)

    def roas(self, basis: RevenueBasis) -> float:
        return roas(self.revenue(basis), self.total_cost(basis))

    def roi_percent(self, basis: RevenueBasis) -> float:
        return roi_percent(self.revenue(basis), self.total_cost(basis))

    def conversion_rate(self, basis: RevenueBasis) -> float:
        # Promo orders have no click denominator
        if basis != RevenueBasis.UTM or self.clicks == 0:
            return 0.0
        return self.orders_utm / self.clicks * 100

    def view(self, basis: RevenueBasis) -> CampaignView:
        return CampaignView(
            basis=basis,
            revenue=self.revenue(basis),
            orders=self.orders(basis),
            commission_cost=self.commission_cost(basis),
            total_cost=self.total_cost(basis),
            roas=self.roas(basis),
            roi_percent=self.roi_percent(basis),
            conversion_rate=self.conversion_rate(basis),
        )


@dataclass
class _SlugTally:
    clicks: int = 0
    add_to_carts: int = 0
    purchases: int = 0
    revenue: float = 0.0


@dataclass
class _PromoTally:
    orders: int = 0
    revenue: float = 0.0


def _tally_events(
    events: Iterable[Event], window: AttributionWindow
) -> dict[str, _SlugTally]:
    tallies: dict[str, _SlugTally] = defaultdict(_SlugTally)
    dropped = 0

    for event in events:
        if not window.contains(event.occurred_at):
            continue

        if not event.is_attributable:
            dropped += 1
            continue

        tally = tallies[event.campaign_slug]
        if event.event_type in CLICK_EVENT_TYPES:
            tally.clicks += 1
        elif event.event_type == EventType.ADD_TO_CART:
            tally.add_to_carts += 1
        elif event.event_type == EventType.PURCHASE:
            tally.purchases += 1
            tally.revenue += event.revenue

    if dropped:
        logger.debug("Dropped %s events without a campaign slug", dropped)

    return dict(tallies)


def _tally_promo_orders(
    orders: Iterable[Order], window: AttributionWindow
) -> dict[str, _PromoTally]:
    tallies: dict[str, _PromoTally] = defaultdict(_PromoTally)

    for order in orders:
        if not window.contains(order.occurred_at):
            continue

        code = order.normalized_promo_code
        if code is None:
            continue

        tally = tallies[code]
        tally.orders += 1
        tally.revenue += order.total_price

    return dict(tallies)


def _warn_shared_promo_codes(campaigns: list[Campaign]) -> None:
    owners: dict[str, list[str]] = defaultdict(list)
    for campaign in campaigns:
        code = campaign.normalized_promo_code
        if code is not None:
            owners[code].append(campaign.id)

    for code, campaign_ids in owners.items():
        if len(campaign_ids) > 1:
            logger.warning(
                "Promo code %r shared by campaigns %s; promo revenue is counted "
                "once per campaign",
                code,
                campaign_ids,
            )


def resolve_influencer_id(
    campaign: Campaign, known_influencer_ids: Optional[set[str]]
) -> Optional[str]:
    """Return the campaign's influencer id if it resolves.

    Raises:
        MissingCampaignReferenceError: If the id is set but unknown
    """
    if campaign.influencer_id is None or known_influencer_ids is None:
        return campaign.influencer_id

    if campaign.influencer_id not in known_influencer_ids:
        raise MissingCampaignReferenceError(campaign.id, campaign.influencer_id)

    return campaign.influencer_id


def _failed_metrics(campaign: Campaign, error: str) -> CampaignMetrics:
    return CampaignMetrics(
        campaign_id=campaign.id,
        campaign_name=campaign.name,
        slug=campaign.slug,
        promo_code=campaign.promo_code,
        influencer_id=None,
        status=campaign.status,
        fixed_cost=0.0,
        commission_percent=0.0,
        error=error,
    )


def _campaign_metrics(
    campaign: Campaign,
    slug_tallies: dict[str, _SlugTally],
    promo_tallies: dict[str, _PromoTally],
    known_influencer_ids: Optional[set[str]],
) -> CampaignMetrics:
    try:
        influencer_id = resolve_influencer_id(campaign, known_influencer_ids)
    except MissingCampaignReferenceError as exc:
        logger.warning("%s; reporting campaign without influencer", exc)
        influencer_id = None

    slug_tally = slug_tallies.get(campaign.slug, _SlugTally())

    promo_code = campaign.normalized_promo_code
    promo_tally = _PromoTally()
    if promo_code is not None:
        promo_tally = promo_tallies.get(promo_code, promo_tally)

    return CampaignMetrics(
        campaign_id=campaign.id,
        campaign_name=campaign.name,
        slug=campaign.slug,
        promo_code=campaign.promo_code,
        influencer_id=influencer_id,
        status=campaign.status,
        fixed_cost=float(campaign.fixed_cost),
        commission_percent=float(campaign.commission_percent),
        clicks=slug_tally.clicks,
        add_to_carts=slug_tally.add_to_carts,
        orders_utm=slug_tally.purchases,
        revenue_utm=slug_tally.revenue,
        orders_promo=promo_tally.orders,
        revenue_promo=promo_tally.revenue,
    )


def compute_campaign_metrics(
    campaigns: Iterable[Campaign],
    events: Iterable[Event],
    orders: Iterable[Order],
    window: Optional[AttributionWindow] = None,
    influencers: Optional[Iterable[Influencer]] = None,
) -> list[CampaignMetrics]:
    """Attribute events and orders to campaigns over a window.

    Events and orders outside the window are ignored, whatever the caller
    passed in. Each campaign is computed in isolation: a failure is logged
    and reported through CampaignMetrics.error without affecting the others.

    Args:
        campaigns: Campaign registry snapshot
        events: Tracking events
        orders: Orders
        window: Inclusive window (defaults to epoch..now)
        influencers: Known influencers; when given, dangling campaign
            references are reported as None

    Returns:
        One CampaignMetrics per campaign, in input order
    """
    if window is None:
        window = AttributionWindow.open_ended()

    campaign_list = list(campaigns)
    _warn_shared_promo_codes(campaign_list)

    slug_tallies = _tally_events(events, window)
    promo_tallies = _tally_promo_orders(orders, window)

    known_influencer_ids = None
    if influencers is not None:
        known_influencer_ids = {influencer.id for influencer in influencers}

    results: list[CampaignMetrics] = []
    for campaign in campaign_list:
        try:
            metrics = _campaign_metrics(
                campaign, slug_tallies, promo_tallies, known_influencer_ids
            )
        except Exception as exc:
            logger.error(
                "Attribution failed for campaign %s: %s",
                campaign.id,
                exc,
                exc_info=True,
            )
            metrics = _failed_metrics(campaign, str(exc))
        results.append(metrics)

    logger.debug(
        "Computed metrics for %s campaigns (%s..%s)",
        len(results),
        window.start.isoformat(),
        window.end.isoformat(),
    )
    return results
