"""Pydantic model for tracking pixel beacon payloads."""
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .records import Event, EventType


class TrackingEventPayload(BaseModel):
    """Body posted by the storefront tracking pixel.

    Only the attribution fields are typed; everything else the pixel sends
    (geo, product, quantity...) is kept verbatim in the event's raw payload.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    slug_utm: Optional[str] = Field(
        None, alias="slugUtm", description="utm_campaign stored by the pixel"
    )
    event_type: EventType = Field(..., alias="eventType")
    session_id: str = Field("", alias="sessionId")
    revenue: float = Field(
        0.0, ge=0, allow_inf_nan=False, description="Checkout total for purchases"
    )
    occurred_at: Optional[datetime] = Field(
        None, alias="occurredAt", description="Client timestamp (server time if absent)"
    )

    def to_event(self, received_at: Optional[datetime] = None) -> Event:
        """Build the Event to append to the Event Store."""
        occurred_at = self.occurred_at or received_at or datetime.now(timezone.utc)
        return Event(
            id=str(uuid.uuid4()),
            campaign_slug=self.slug_utm,
            event_type=self.event_type,
            session_id=self.session_id,
            revenue=self.revenue if self.event_type == EventType.PURCHASE else 0.0,
            occurred_at=occurred_at,
            raw_payload=self.model_dump(mode="json", by_alias=True),
        )
