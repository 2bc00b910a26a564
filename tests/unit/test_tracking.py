"""Unit tests for tracking pixel payload parsing."""
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.influtrak_core.schemas.records import EventType
from src.influtrak_core.schemas.tracking import TrackingEventPayload


RECEIVED_AT = datetime(2024, 12, 3, 10, tzinfo=timezone.utc)


def test_purchase_payload_becomes_event():
    """Pixel aliases map onto Event fields."""
    payload = TrackingEventPayload.model_validate(
        {
            "slugUtm": "summer",
            "eventType": "purchase",
            "sessionId": "sess_abc",
            "revenue": 59.9,
            "productId": "gid://shopify/Product/1",
        }
    )

    event = payload.to_event(received_at=RECEIVED_AT)

    assert event.campaign_slug == "summer"
    assert event.event_type == EventType.PURCHASE
    assert event.revenue == 59.9
    assert event.occurred_at == RECEIVED_AT
    assert event.raw_payload["productId"] == "gid://shopify/Product/1"
    assert event.raw_payload["slugUtm"] == "summer"


def test_non_purchase_revenue_is_zeroed():
    """Only purchases carry revenue."""
    payload = TrackingEventPayload.model_validate(
        {"slugUtm": "summer", "eventType": "page_view", "revenue": 12.0}
    )

    assert payload.to_event(received_at=RECEIVED_AT).revenue == 0.0


def test_client_timestamp_wins_over_receive_time():
    """occurredAt from the pixel is used when present."""
    payload = TrackingEventPayload.model_validate(
        {"eventType": "add_to_cart", "occurredAt": "2024-12-01T08:00:00Z"}
    )

    event = payload.to_event(received_at=RECEIVED_AT)

    assert event.occurred_at == datetime(2024, 12, 1, 8, tzinfo=timezone.utc)
    assert event.campaign_slug is None
    assert not event.is_attributable


def test_unknown_slug_is_not_attributable():
    """The pixel's 'unknown' placeholder never matches a campaign."""
    payload = TrackingEventPayload.model_validate(
        {"slugUtm": "unknown", "eventType": "page_view"}
    )

    assert not payload.to_event(received_at=RECEIVED_AT).is_attributable


def test_unknown_event_type_rejected():
    """Event types outside the pixel vocabulary are invalid."""
    with pytest.raises(ValidationError):
        TrackingEventPayload.model_validate({"eventType": "scroll"})


def test_checkout_started_is_accepted():
    """The pixel's checkout_started beacon is a valid event type."""
    payload = TrackingEventPayload.model_validate(
        {"slugUtm": "summer", "eventType": "checkout_started", "revenue": 30.0}
    )

    event = payload.to_event(received_at=RECEIVED_AT)

    assert event.event_type == EventType.CHECKOUT_STARTED
    assert event.revenue == 0.0


@pytest.mark.parametrize("bad_revenue", [float("inf"), float("-inf"), float("nan")])
def test_non_finite_revenue_rejected(bad_revenue):
    """A beacon cannot carry infinite or NaN revenue."""
    with pytest.raises(ValidationError):
        TrackingEventPayload.model_validate(
            {"slugUtm": "summer", "eventType": "purchase", "revenue": bad_revenue}
        )
