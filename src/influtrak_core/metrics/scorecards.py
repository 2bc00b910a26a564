"""Dashboard and influencer roll-ups of campaign metrics."""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

from ..schemas.records import CampaignStatus, Influencer
from .attribution import CampaignMetrics, RevenueBasis, roas
from .rating import Rating, RatingThresholds, classify_rating


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InfluencerScorecard:
    """Aggregated performance of one influencer's campaigns."""

    influencer_id: str
    name: str
    total_campaigns: int
    active_campaigns: int
    total_cost: float
    total_revenue: float
    total_orders: int
    roas: float
    rating: Rating


@dataclass(frozen=True)
class DashboardSummary:
    """Headline figures for the dashboard cards."""

    total_influencers: int
    active_campaigns: int
    total_revenue: float
    total_costs: float
    average_roas: float
    portfolio_roas: float


def _usable(metrics: Iterable[CampaignMetrics]) -> list[CampaignMetrics]:
    usable = []
    for item in metrics:
        if item.error is not None:
            logger.warning(
                "Skipping campaign %s in roll-up: %s", item.campaign_id, item.error
            )
            continue
        usable.append(item)
    return usable


def build_influencer_scorecards(
    influencers: Iterable[Influencer],
    metrics: Iterable[CampaignMetrics],
    thresholds: RatingThresholds,
    basis: RevenueBasis = RevenueBasis.UTM,
) -> list[InfluencerScorecard]:
    """Aggregate campaign metrics per influencer and rate each one.

    ROAS is computed on the summed revenue and summed cost of all the
    influencer's campaigns, not averaged per campaign.

    Args:
        influencers: Influencers to report (order preserved)
        metrics: Campaign metrics from compute_campaign_metrics
        thresholds: Rating thresholds passed to the classifier
        basis: Revenue basis for cost and ROAS

    Returns:
        One scorecard per influencer, including those with no campaigns
    """
    by_influencer: dict[str, list[CampaignMetrics]] = defaultdict(list)
    for item in _usable(metrics):
        if item.influencer_id is not None:
            by_influencer[item.influencer_id].append(item)

    scorecards: list[InfluencerScorecard] = []
    for influencer in influencers:
        campaigns = by_influencer.get(influencer.id, [])

        total_revenue = sum(item.revenue(basis) for item in campaigns)
        total_cost = sum(item.total_cost(basis) for item in campaigns)
        influencer_roas = roas(total_revenue, total_cost)

        scorecards.append(
            InfluencerScorecard(
                influencer_id=influencer.id,
                name=influencer.name,
                total_campaigns=len(campaigns),
                active_campaigns=sum(
                    1 for item in campaigns if item.status == CampaignStatus.ACTIVE
                ),
                total_cost=total_cost,
                total_revenue=total_revenue,
                total_orders=sum(item.orders(basis) for item in campaigns),
                roas=influencer_roas,
                rating=classify_rating(influencer_roas, len(campaigns), thresholds),
            )
        )

    return scorecards


def summarize_dashboard(
    metrics: Iterable[CampaignMetrics],
    influencer_count: int,
    basis: RevenueBasis = RevenueBasis.UTM,
) -> DashboardSummary:
    """Build dashboard totals from campaign metrics.

    Args:
        metrics: Campaign metrics from compute_campaign_metrics
        influencer_count: Number of registered influencers
        basis: Revenue basis for revenue, cost and ROAS

    Returns:
        DashboardSummary
    """
    usable = _usable(metrics)

    total_revenue = sum(item.revenue(basis) for item in usable)
    total_costs = sum(item.total_cost(basis) for item in usable)
    average_roas = (
        sum(item.roas(basis) for item in usable) / len(usable) if usable else 0.0
    )

    return DashboardSummary(
        total_influencers=influencer_count,
        active_campaigns=sum(
            1 for item in usable if item.status == CampaignStatus.ACTIVE
        ),
        total_revenue=total_revenue,
        total_costs=total_costs,
        average_roas=average_roas,
        portfolio_roas=roas(total_revenue, total_costs),
    )
