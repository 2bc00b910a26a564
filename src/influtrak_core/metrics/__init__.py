"""InfluTrak attribution core.

Joins two independent attribution signals to campaigns over a date window:
- UTM-tagged tracking pixel events (linked-click revenue)
- Orders carrying the campaign promo code (promo revenue)

and rates influencers from the resulting ROAS.
"""
from .attribution import (
    CampaignMetrics,
    CampaignView,
    RevenueBasis,
    compute_campaign_metrics,
    roas,
    roi_percent,
)
from .exceptions import (
    AttributionError,
    DuplicatePromoCodeError,
    InvalidWindowError,
    MissingCampaignReferenceError,
)
from .rating import Rating, RatingKind, RatingThresholds, classify_rating
from .scorecards import (
    DashboardSummary,
    InfluencerScorecard,
    build_influencer_scorecards,
    summarize_dashboard,
)
from .window import AttributionWindow, normalize_window

__all__ = [
    "AttributionError",
    "AttributionWindow",
    "CampaignMetrics",
    "CampaignView",
    "DashboardSummary",
    "DuplicatePromoCodeError",
    "InfluencerScorecard",
    "InvalidWindowError",
    "MissingCampaignReferenceError",
    "Rating",
    "RatingKind",
    "RatingThresholds",
    "RevenueBasis",
    "build_influencer_scorecards",
    "classify_rating",
    "compute_campaign_metrics",
    "normalize_window",
    "roas",
    "roi_percent",
    "summarize_dashboard",
]
