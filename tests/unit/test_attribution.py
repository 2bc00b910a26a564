"""Unit tests for multi-signal attribution."""
import itertools
import logging
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.influtrak_core.metrics.attribution import (
    RevenueBasis,
    compute_campaign_metrics,
    roas,
    roi_percent,
)
from src.influtrak_core.metrics.window import AttributionWindow
from src.influtrak_core.schemas.records import (
    Campaign,
    CampaignStatus,
    Event,
    EventType,
    Influencer,
    Order,
)
from src.influtrak_core.shopify.webhooks import parse_order_webhook


WINDOW = AttributionWindow(
    start=datetime(2024, 12, 1, tzinfo=timezone.utc),
    end=datetime(2024, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
)
IN_WINDOW = datetime(2024, 12, 10, 12, 0, tzinfo=timezone.utc)

_event_ids = itertools.count(1)


def _event(slug, event_type, revenue=0.0, occurred_at=IN_WINDOW, event_id=None):
    return Event(
        id=event_id or f"evt_{next(_event_ids)}",
        campaign_slug=slug,
        event_type=event_type,
        session_id="sess_1",
        revenue=revenue,
        occurred_at=occurred_at,
    )


def _order(promo_code, total_price, occurred_at=IN_WINDOW, external_id="1001"):
    return Order(
        id=f"ord_{external_id}",
        external_order_id=external_id,
        total_price=total_price,
        currency="EUR",
        promo_code=promo_code,
        occurred_at=occurred_at,
    )


def _summer(**overrides):
    data = {
        "id": "cmp_summer",
        "name": "Summer drop",
        "influencer_id": "inf_1",
        "slug": "summer",
        "promo_code": "SUMMER20",
        "fixed_cost": 100.0,
        "commission_percent": 10.0,
    }
    data.update(overrides)
    return Campaign(**data)


def test_utm_revenue_cost_and_roas():
    """Two purchase events drive UTM revenue, commission and ROAS."""
    events = [
        _event("summer", EventType.PURCHASE, 50.0),
        _event("summer", EventType.PURCHASE, 150.0),
    ]

    [metrics] = compute_campaign_metrics([_summer()], events, [], WINDOW)

    assert metrics.orders_utm == 2
    assert metrics.revenue_utm == 200.0
    assert metrics.commission_cost(RevenueBasis.UTM) == pytest.approx(20.0)
    assert metrics.total_cost(RevenueBasis.UTM) == pytest.approx(120.0)
    assert metrics.roas(RevenueBasis.UTM) == pytest.approx(200 / 120)


def test_promo_match_is_case_and_trim_insensitive():
    """Promo code 'SUMMER20' matches an order with ' summer20 '."""
    orders = [_order(" summer20 ", 80.0)]

    [metrics] = compute_campaign_metrics([_summer()], [], orders, WINDOW)

    assert metrics.orders_promo == 1
    assert metrics.revenue_promo == 80.0
    assert metrics.revenue_utm == 0.0


def test_utm_and_promo_revenue_are_not_summed():
    """Both signals firing for the same sale stay in separate totals."""
    events = [_event("summer", EventType.PURCHASE, 80.0)]
    orders = [_order("SUMMER20", 80.0)]

    [metrics] = compute_campaign_metrics([_summer()], events, orders, WINDOW)

    assert metrics.revenue_utm == 80.0
    assert metrics.revenue_promo == 80.0
    assert metrics.view(RevenueBasis.UTM).revenue == 80.0
    assert metrics.view(RevenueBasis.PROMO).revenue == 80.0


def test_zero_cost_campaign_has_zero_roas():
    """No cost means ROAS 0 even with revenue."""
    campaign = _summer(fixed_cost=0.0, commission_percent=0.0)
    events = [_event("summer", EventType.PURCHASE, 500.0)]

    [metrics] = compute_campaign_metrics([campaign], events, [], WINDOW)

    assert metrics.total_cost(RevenueBasis.UTM) == 0.0
    assert metrics.roas(RevenueBasis.UTM) == 0.0
    assert metrics.roi_percent(RevenueBasis.UTM) == 0.0


def test_empty_campaign_is_all_zero():
    """No matching events or orders gives zero metrics, not errors."""
    campaign = _summer(fixed_cost=0.0, commission_percent=0.0)

    [metrics] = compute_campaign_metrics([campaign], [], [], WINDOW)

    assert metrics.revenue_utm == 0.0
    assert metrics.total_cost(RevenueBasis.UTM) == 0.0
    assert metrics.roas(RevenueBasis.UTM) == 0.0
    assert metrics.error is None


def test_clicks_add_to_carts_and_conversion_rate():
    """Page and product views are clicks; conversion is UTM-only."""
    events = [
        _event("summer", EventType.PAGE_VIEW),
        _event("summer", EventType.PRODUCT_VIEW),
        _event("summer", EventType.PAGE_VIEW),
        _event("summer", EventType.PAGE_VIEW),
        _event("summer", EventType.ADD_TO_CART),
        _event("summer", EventType.PURCHASE, 40.0),
    ]

    [metrics] = compute_campaign_metrics([_summer()], events, [], WINDOW)

    assert metrics.clicks == 4
    assert metrics.add_to_carts == 1
    assert metrics.conversion_rate(RevenueBasis.UTM) == pytest.approx(25.0)
    assert metrics.conversion_rate(RevenueBasis.PROMO) == 0.0


def test_slug_match_is_case_sensitive():
    """'Summer' does not match the 'summer' slug."""
    events = [_event("Summer", EventType.PURCHASE, 99.0)]

    [metrics] = compute_campaign_metrics([_summer()], events, [], WINDOW)

    assert metrics.orders_utm == 0
    assert metrics.revenue_utm == 0.0


def test_unknown_and_missing_slugs_are_dropped():
    """Untracked traffic contributes to no campaign."""
    events = [
        _event(None, EventType.PURCHASE, 10.0),
        _event("unknown", EventType.PURCHASE, 20.0),
        _event("other_campaign", EventType.PURCHASE, 30.0),
        _event("summer", EventType.PURCHASE, 40.0),
    ]

    results = compute_campaign_metrics(
        [_summer(), _summer(id="cmp_unknown", slug="nope", promo_code=None)],
        events,
        [],
        WINDOW,
    )

    total_purchase_revenue = sum(e.revenue for e in events)
    attributed = sum(item.revenue_utm for item in results)
    assert attributed == 40.0
    assert attributed <= total_purchase_revenue


def test_campaign_without_promo_code_has_zero_promo_metrics():
    """No promo code means no promo orders, even for code-less orders."""
    campaign = _summer(promo_code=None)
    orders = [_order(None, 50.0), _order("SUMMER20", 80.0, external_id="1002")]

    [metrics] = compute_campaign_metrics([campaign], [], orders, WINDOW)

    assert metrics.orders_promo == 0
    assert metrics.revenue_promo == 0.0
    view = metrics.view(RevenueBasis.PROMO)
    assert view.total_cost == 100.0
    assert view.roas == 0.0


def test_engine_filters_window_internally():
    """Events and orders outside the window are ignored."""
    before = datetime(2024, 11, 30, 23, 59, 59, tzinfo=timezone.utc)
    after = datetime(2025, 1, 1, tzinfo=timezone.utc)
    events = [
        _event("summer", EventType.PURCHASE, 10.0, occurred_at=before),
        _event("summer", EventType.PURCHASE, 20.0, occurred_at=WINDOW.start),
        _event("summer", EventType.PURCHASE, 30.0, occurred_at=WINDOW.end),
        _event("summer", EventType.PURCHASE, 40.0, occurred_at=after),
    ]
    orders = [
        _order("summer20", 70.0, occurred_at=before, external_id="1"),
        _order("summer20", 80.0, occurred_at=IN_WINDOW, external_id="2"),
    ]

    [metrics] = compute_campaign_metrics([_summer()], events, orders, WINDOW)

    assert metrics.revenue_utm == 50.0
    assert metrics.orders_utm == 2
    assert metrics.revenue_promo == 80.0


def test_shared_promo_code_counts_for_each_campaign(caplog):
    """Campaigns sharing a promo code each count the same orders (and warn)."""
    campaigns = [_summer(), _summer(id="cmp_copy", slug="summer_copy")]
    orders = [_order("summer20", 80.0)]

    with caplog.at_level(logging.WARNING):
        results = compute_campaign_metrics(campaigns, [], orders, WINDOW)

    assert [item.revenue_promo for item in results] == [80.0, 80.0]
    assert "shared by campaigns" in caplog.text


def test_dangling_influencer_degrades_to_none():
    """An unknown influencer id is reported as None, never raised."""
    influencers = [Influencer(id="inf_other", name="Other")]

    [metrics] = compute_campaign_metrics(
        [_summer()], [], [], WINDOW, influencers=influencers
    )

    assert metrics.influencer_id is None
    assert metrics.error is None


def test_campaign_without_influencer():
    """Campaigns may have no influencer at all."""
    [metrics] = compute_campaign_metrics([_summer(influencer_id=None)], [], [], WINDOW)

    assert metrics.influencer_id is None


def test_one_bad_campaign_does_not_abort_batch():
    """A campaign that fails is isolated; the others still compute."""
    broken = Campaign.model_construct(
        id="cmp_broken",
        name="Broken",
        influencer_id=None,
        slug="summer",
        promo_code=None,
        fixed_cost=None,
        commission_percent=10.0,
        status=CampaignStatus.ACTIVE,
    )
    events = [_event("summer", EventType.PURCHASE, 50.0)]

    results = compute_campaign_metrics([broken, _summer()], events, [], WINDOW)

    assert results[0].campaign_id == "cmp_broken"
    assert results[0].error is not None
    assert results[1].error is None
    assert results[1].revenue_utm == 50.0


def test_total_cost_never_below_fixed_cost():
    """Commission is non-negative, so cost >= fixed cost on both bases."""
    events = [_event("summer", EventType.PURCHASE, 123.45)]
    orders = [_order("summer20", 67.8)]

    [metrics] = compute_campaign_metrics([_summer()], events, orders, WINDOW)

    for basis in RevenueBasis:
        assert metrics.total_cost(basis) >= metrics.fixed_cost


def test_compute_is_idempotent():
    """Identical inputs give identical output."""
    events = [
        _event("summer", EventType.PURCHASE, 0.1, event_id="a"),
        _event("summer", EventType.PURCHASE, 0.2, event_id="b"),
        _event("summer", EventType.PAGE_VIEW, event_id="c"),
    ]
    orders = [_order("SUMMER20", 80.0)]

    first = compute_campaign_metrics([_summer()], events, orders, WINDOW)
    second = compute_campaign_metrics([_summer()], events, orders, WINDOW)

    assert first == second


def test_roas_and_roi_percent_are_distinct():
    """ROAS is revenue/cost; ROI% is profit/cost * 100."""
    assert roas(200.0, 100.0) == 2.0
    assert roi_percent(200.0, 100.0) == 100.0
    assert roas(50.0, 0.0) == 0.0
    assert roi_percent(50.0, 0.0) == 0.0


def test_checkout_started_is_stored_but_not_attributed():
    """checkout_started events are neither clicks, carts nor purchases."""
    events = [
        _event("summer", EventType.CHECKOUT_STARTED),
        _event("summer", EventType.PAGE_VIEW),
    ]

    [metrics] = compute_campaign_metrics([_summer()], events, [], WINDOW)

    assert metrics.clicks == 1
    assert metrics.add_to_carts == 0
    assert metrics.orders_utm == 0


def test_order_with_generic_code_first_still_reaches_campaign():
    """A generic code applied before the campaign code does not hide it."""
    order = parse_order_webhook(
        {
            "id": 7001,
            "created_at": "2024-12-10T12:00:00Z",
            "total_price": "60.00",
            "discount_codes": [{"code": "WELCOME5"}, {"code": "SUMMER20"}],
        },
        known_promo_codes={"summer20"},
    )

    [metrics] = compute_campaign_metrics([_summer()], [], [order], WINDOW)

    assert order.promo_code == "SUMMER20"
    assert metrics.orders_promo == 1
    assert metrics.revenue_promo == 60.0


@pytest.mark.parametrize("bad_value", [float("inf"), float("nan")])
def test_non_finite_amounts_rejected(bad_value):
    """Infinite or NaN money never enters the engine's inputs."""
    with pytest.raises(ValidationError):
        _event("summer", EventType.PURCHASE, bad_value)

    with pytest.raises(ValidationError):
        _order("SUMMER20", bad_value)

    with pytest.raises(ValidationError):
        _summer(fixed_cost=bad_value)
