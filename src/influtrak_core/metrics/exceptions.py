"""Custom exceptions for the attribution core."""


class AttributionError(Exception):
    """Base exception for all attribution core errors."""


class InvalidWindowError(AttributionError):
    """Raised when attribution window bounds are malformed or inverted."""

    def __init__(self, bound: str, value: object, reason: str):
        self.bound = bound
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid window bound {bound}={value!r}: {reason}")


class MissingCampaignReferenceError(AttributionError):
    """Raised when a campaign points at an influencer that does not exist.

    The engine catches this and degrades the reference to None.
    """

    def __init__(self, campaign_id: str, influencer_id: str):
        self.campaign_id = campaign_id
        self.influencer_id = influencer_id
        super().__init__(
            f"Campaign {campaign_id} references unknown influencer {influencer_id}"
        )


class DuplicatePromoCodeError(AttributionError):
    """Raised when a promo code is already claimed by another campaign."""

    def __init__(self, promo_code: str, existing_campaign_id: str):
        self.promo_code = promo_code
        self.existing_campaign_id = existing_campaign_id
        super().__init__(
            f"Promo code {promo_code!r} already used by campaign {existing_campaign_id}"
        )
