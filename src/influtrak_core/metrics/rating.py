"""Star rating classification from ROAS.

Thresholds come from the single global rating settings record and are
always passed in explicitly.
"""
import math
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field, model_validator


MAX_STARS = 3


class RatingThresholds(BaseModel):
    """Operator-configurable ROAS bounds for each star tier (inclusive)."""

    star1_min: float = Field(
        0.0, allow_inf_nan=False, description="Lowest ROAS for 1 star"
    )
    star1_max: float = Field(
        1.99, allow_inf_nan=False, description="Highest ROAS for 1 star"
    )
    star2_min: float = Field(
        2.0, allow_inf_nan=False, description="Lowest ROAS for 2 stars"
    )
    star2_max: float = Field(
        2.99, allow_inf_nan=False, description="Highest ROAS for 2 stars"
    )
    star3_min: float = Field(
        3.0, allow_inf_nan=False, description="Lowest ROAS for 3 stars"
    )
    loss_text: str = Field("⚠️ Loss !", min_length=1, description="Label for a loss")

    @model_validator(mode="after")
    def _check_ordering(self) -> "RatingThresholds":
        bounds = [
            self.star1_min,
            self.star1_max,
            self.star2_min,
            self.star2_max,
            self.star3_min,
        ]
        if any(lower > upper for lower, upper in zip(bounds, bounds[1:])):
            raise ValueError(
                "rating thresholds must satisfy "
                "star1_min <= star1_max <= star2_min <= star2_max <= star3_min"
            )
        return self


class RatingKind(str, Enum):
    NEW = "new"
    LOSS = "loss"
    STARS = "stars"
    UNRATED = "unrated"


@dataclass(frozen=True)
class Rating:
    kind: RatingKind
    stars: int
    label: str


def _stars(count: int) -> Rating:
    return Rating(
        kind=RatingKind.STARS,
        stars=count,
        label="★" * count + "☆" * (MAX_STARS - count),
    )


def _nearest_tier(roas: float, thresholds: RatingThresholds) -> int:
    # roas is strictly inside a gap between two tiers; ties go to the lower one
    if roas < thresholds.star2_min:
        lower, upper, tier = thresholds.star1_max, thresholds.star2_min, 1
    else:
        lower, upper, tier = thresholds.star2_max, thresholds.star3_min, 2
    return tier if roas - lower <= upper - roas else tier + 1


def classify_rating(
    roas: float, campaign_count: int, thresholds: RatingThresholds
) -> Rating:
    """Map ROAS to a rating. First matching rule wins.

    1. No campaigns -> NEW
    2. Negative ROAS -> LOSS (labelled with thresholds.loss_text)
    3-5. Inclusive star tiers, checked from 1 to 3 so a shared boundary
         lands in the lower tier
    6. Below star1_min -> UNRATED; inside a gap between tiers -> nearest tier

    Args:
        roas: Aggregated ROAS
        campaign_count: Number of campaigns behind the ROAS
        thresholds: Rating thresholds

    Returns:
        Rating
    """
    if campaign_count == 0:
        return Rating(kind=RatingKind.NEW, stars=0, label="new")

    if math.isnan(roas):
        return Rating(kind=RatingKind.UNRATED, stars=0, label="unrated")

    if roas < 0:
        return Rating(kind=RatingKind.LOSS, stars=0, label=thresholds.loss_text)

    if thresholds.star1_min <= roas <= thresholds.star1_max:
        return _stars(1)

    if thresholds.star2_min <= roas <= thresholds.star2_max:
        return _stars(2)

    if roas >= thresholds.star3_min:
        return _stars(3)

    if roas < thresholds.star1_min:
        return Rating(kind=RatingKind.UNRATED, stars=0, label="unrated")

    return _stars(_nearest_tier(roas, thresholds))
