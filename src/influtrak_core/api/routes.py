"""FastAPI routes for InfluTrak attribution views and ingestion."""
import json
import logging
import os
import sqlite3
from datetime import datetime
from typing import Any, Iterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..metrics.attribution import CampaignMetrics, RevenueBasis, compute_campaign_metrics
from ..metrics.exceptions import InvalidWindowError
from ..metrics.rating import RatingThresholds
from ..metrics.scorecards import build_influencer_scorecards, summarize_dashboard
from ..metrics.window import AttributionWindow, normalize_window
from ..schemas.tracking import TrackingEventPayload
from ..shopify.exceptions import OrderPayloadError, ShopifyWebhookVerificationError
from ..shopify.webhooks import parse_order_webhook, require_valid_webhook
from ..store.repository import AttributionSnapshot, AttributionStore
from ..store.schema import connect, init_database
from .auth import require_api_key


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["attribution"])


def get_store() -> Iterator[AttributionStore]:
    """Open a per-request store on INFLUTRAK_DB_PATH."""
    db_path = os.getenv("INFLUTRAK_DB_PATH", "data/influtrak.db")
    conn = connect(db_path)
    try:
        init_database(conn)
        yield AttributionStore(conn)
    finally:
        conn.close()


class RatingResponse(BaseModel):
    kind: str
    stars: int
    label: str


class CampaignStatsResponse(BaseModel):
    """Campaign metrics for one revenue basis."""

    campaign_id: str
    name: str
    slug: str
    promo_code: Optional[str]
    influencer_id: Optional[str]
    influencer_name: Optional[str]
    status: str
    basis: RevenueBasis
    clicks: int
    add_to_carts: int
    orders_utm: int
    revenue_utm: float
    orders_promo: int
    revenue_promo: float
    fixed_cost: float
    commission_percent: float
    commission_cost: float
    total_cost: float
    roas: float
    roi_percent: float
    conversion_rate: float
    error: Optional[str] = Field(None, description="Set when this campaign failed")


class InfluencerStatsResponse(BaseModel):
    influencer_id: str
    name: str
    total_campaigns: int
    active_campaigns: int
    total_cost: float
    total_revenue: float
    total_orders: int
    roas: float
    rating: RatingResponse


class DashboardStatsResponse(BaseModel):
    total_influencers: int
    active_campaigns: int
    total_revenue: float
    total_costs: float
    average_roas: float
    portfolio_roas: float


class TrackingEventResponse(BaseModel):
    success: bool
    event_id: str


class WebhookResponse(BaseModel):
    success: bool
    order_id: Optional[str] = None


class CampaignEventResponse(BaseModel):
    """One tracking event of a campaign, as recorded by the pixel."""

    id: str
    event_type: str
    session_id: str
    revenue: float
    occurred_at: datetime
    payload: dict[str, Any]


def _parse_window(raw_from: Optional[str], raw_to: Optional[str]) -> AttributionWindow:
    try:
        return normalize_window(raw_from, raw_to)
    except InvalidWindowError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


def _load_snapshot(
    store: AttributionStore, raw_from: Optional[str], raw_to: Optional[str]
) -> AttributionSnapshot:
    window = _parse_window(raw_from, raw_to)

    try:
        return store.load_snapshot(window)
    except sqlite3.Error as exc:
        logger.error("Snapshot read failed: %s", exc, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read attribution data",
        ) from exc


def _compute(snapshot: AttributionSnapshot) -> list[CampaignMetrics]:
    return compute_campaign_metrics(
        snapshot.campaigns,
        snapshot.events,
        snapshot.orders,
        snapshot.window,
        influencers=snapshot.influencers,
    )


@router.get(
    "/stats",
    response_model=DashboardStatsResponse,
    dependencies=[Depends(require_api_key)],
    summary="Dashboard totals for a window",
)
async def get_dashboard_stats(
    raw_from: Optional[str] = Query(None, alias="from"),
    raw_to: Optional[str] = Query(None, alias="to"),
    basis: RevenueBasis = RevenueBasis.UTM,
    store: AttributionStore = Depends(get_store),
) -> DashboardStatsResponse:
    snapshot = _load_snapshot(store, raw_from, raw_to)
    summary = summarize_dashboard(
        _compute(snapshot), len(snapshot.influencers), basis
    )

    return DashboardStatsResponse(
        total_influencers=summary.total_influencers,
        active_campaigns=summary.active_campaigns,
        total_revenue=summary.total_revenue,
        total_costs=summary.total_costs,
        average_roas=summary.average_roas,
        portfolio_roas=summary.portfolio_roas,
    )


@router.get(
    "/campaigns/stats",
    response_model=list[CampaignStatsResponse],
    dependencies=[Depends(require_api_key)],
    summary="Per-campaign attribution metrics",
    description=(
        "UTM and promo revenue are both returned; cost, ROAS and ROI use the "
        "revenue selected by `basis`."
    ),
)
async def get_campaign_stats(
    raw_from: Optional[str] = Query(None, alias="from"),
    raw_to: Optional[str] = Query(None, alias="to"),
    basis: RevenueBasis = RevenueBasis.UTM,
    store: AttributionStore = Depends(get_store),
) -> list[CampaignStatsResponse]:
    snapshot = _load_snapshot(store, raw_from, raw_to)
    names = {influencer.id: influencer.name for influencer in snapshot.influencers}

    responses: list[CampaignStatsResponse] = []
    for metrics in _compute(snapshot):
        view = metrics.view(basis)
        responses.append(
            CampaignStatsResponse(
                campaign_id=metrics.campaign_id,
                name=metrics.campaign_name,
                slug=metrics.slug,
                promo_code=metrics.promo_code,
                influencer_id=metrics.influencer_id,
                influencer_name=names.get(metrics.influencer_id),
                status=metrics.status.value,
                basis=basis,
                clicks=metrics.clicks,
                add_to_carts=metrics.add_to_carts,
                orders_utm=metrics.orders_utm,
                revenue_utm=metrics.revenue_utm,
                orders_promo=metrics.orders_promo,
                revenue_promo=metrics.revenue_promo,
                fixed_cost=metrics.fixed_cost,
                commission_percent=metrics.commission_percent,
                commission_cost=view.commission_cost,
                total_cost=view.total_cost,
                roas=view.roas,
                roi_percent=view.roi_percent,
                conversion_rate=view.conversion_rate,
                error=metrics.error,
            )
        )

    return responses


@router.get(
    "/influencers/stats",
    response_model=list[InfluencerStatsResponse],
    dependencies=[Depends(require_api_key)],
    summary="Influencer scorecards with star ratings",
)
async def get_influencer_stats(
    raw_from: Optional[str] = Query(None, alias="from"),
    raw_to: Optional[str] = Query(None, alias="to"),
    basis: RevenueBasis = RevenueBasis.UTM,
    store: AttributionStore = Depends(get_store),
) -> list[InfluencerStatsResponse]:
    snapshot = _load_snapshot(store, raw_from, raw_to)
    scorecards = build_influencer_scorecards(
        snapshot.influencers, _compute(snapshot), snapshot.thresholds, basis
    )

    return [
        InfluencerStatsResponse(
            influencer_id=card.influencer_id,
            name=card.name,
            total_campaigns=card.total_campaigns,
            active_campaigns=card.active_campaigns,
            total_cost=card.total_cost,
            total_revenue=card.total_revenue,
            total_orders=card.total_orders,
            roas=card.roas,
            rating=RatingResponse(
                kind=card.rating.kind.value,
                stars=card.rating.stars,
                label=card.rating.label,
            ),
        )
        for card in scorecards
    ]


@router.get(
    "/campaigns/{campaign_id}/events",
    response_model=list[CampaignEventResponse],
    dependencies=[Depends(require_api_key)],
    summary="Pixel events tracked for one campaign",
)
async def get_campaign_events(
    campaign_id: str,
    raw_from: Optional[str] = Query(None, alias="from"),
    raw_to: Optional[str] = Query(None, alias="to"),
    store: AttributionStore = Depends(get_store),
) -> list[CampaignEventResponse]:
    window = _parse_window(raw_from, raw_to)

    campaign = store.get_campaign(campaign_id)
    if campaign is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Campaign {campaign_id} not found",
        )

    events = store.list_events_in_window(window, campaign_slug=campaign.slug)

    return [
        CampaignEventResponse(
            id=event.id,
            event_type=event.event_type.value,
            session_id=event.session_id,
            revenue=event.revenue,
            occurred_at=event.occurred_at,
            payload=event.raw_payload,
        )
        for event in events
    ]


@router.get(
    "/settings/rating",
    response_model=RatingThresholds,
    dependencies=[Depends(require_api_key)],
    summary="Current rating thresholds",
)
async def get_rating_settings(
    store: AttributionStore = Depends(get_store),
) -> RatingThresholds:
    return store.get_rating_thresholds()


@router.put(
    "/settings/rating",
    response_model=RatingThresholds,
    dependencies=[Depends(require_api_key)],
    summary="Replace rating thresholds",
)
async def update_rating_settings(
    thresholds: RatingThresholds,
    store: AttributionStore = Depends(get_store),
) -> RatingThresholds:
    store.save_rating_thresholds(thresholds)
    return thresholds


@router.post(
    "/tracking/event",
    response_model=TrackingEventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Tracking pixel beacon",
)
async def track_event(
    payload: TrackingEventPayload,
    store: AttributionStore = Depends(get_store),
) -> TrackingEventResponse:
    """Append a pixel event. Events without a known slug are stored anyway."""
    event = payload.to_event()
    store.record_event(event)

    logger.info(
        "Tracked event: id=%s, type=%s, slug=%s",
        event.id,
        event.event_type.value,
        event.campaign_slug,
    )
    return TrackingEventResponse(success=True, event_id=event.id)


@router.post(
    "/webhooks/orders/create",
    response_model=WebhookResponse,
    summary="Shopify orders/create webhook",
)
async def order_created_webhook(
    request: Request,
    store: AttributionStore = Depends(get_store),
) -> WebhookResponse:
    """Verify, parse and upsert a Shopify order."""
    secret = os.getenv("SHOPIFY_API_SECRET")
    if not secret:
        logger.error("SHOPIFY_API_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        )

    raw_body = await request.body()

    try:
        require_valid_webhook(
            raw_body, request.headers.get("X-Shopify-Hmac-Sha256"), secret
        )
    except ShopifyWebhookVerificationError as exc:
        logger.warning("Rejected orders/create webhook: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        ) from exc

    try:
        order = parse_order_webhook(json.loads(raw_body), store.list_promo_codes())
    except (json.JSONDecodeError, OrderPayloadError) as exc:
        logger.warning("Unparseable orders/create webhook: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    store.upsert_order(order)

    logger.info(
        "Upserted order %s (promo_code=%s)", order.external_order_id, order.promo_code
    )
    return WebhookResponse(success=True, order_id=order.external_order_id)
