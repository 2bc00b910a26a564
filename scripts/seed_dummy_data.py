import os
import random
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.influtrak_core.schemas.records import (
    Campaign,
    CampaignStatus,
    Event,
    EventType,
    Influencer,
    Order,
)
from src.influtrak_core.store.repository import AttributionStore
from src.influtrak_core.store.schema import connect, init_database

# Configuration
DB_PATH = os.getenv("INFLUTRAK_DB_PATH", "data/influtrak.db")
DAYS_BACK = 7

# Scenarios to seed
SCENARIOS = [
    {
        "influencer": "Lina Beauty",
        "slug": "lina_summer",
        "promo_code": "LINA10",
        "fixed_cost": 150.0,
        "commission_percent": 10.0,
        "daily_visits": 120,
        "cvr": 0.04,   # 4% of visits buy (Winner)
        "promo_orders": 2,
        "aov": 60.0,
    },
    {
        "influencer": "Max Outdoors",
        "slug": "max_trail",
        "promo_code": "TRAIL15",
        "fixed_cost": 400.0,
        "commission_percent": 5.0,
        "daily_visits": 40,
        "cvr": 0.005,  # Barely converts (Loser)
        "promo_orders": 0,
        "aov": 35.0,
    },
    {
        "influencer": "Sam Tech",
        "slug": "sam_unboxing",
        "promo_code": None,  # UTM only
        "fixed_cost": 0.0,
        "commission_percent": 20.0,
        "daily_visits": 60,
        "cvr": 0.02,
        "promo_orders": 0,
        "aov": 120.0,
    },
]


def seed_data():
    conn = connect(DB_PATH)
    init_database(conn)
    store = AttributionStore(conn)
    now = datetime.now(timezone.utc)

    print(f"Seeding data for the last {DAYS_BACK} days...")

    for scenario in SCENARIOS:
        influencer = Influencer(id=str(uuid.uuid4()), name=scenario["influencer"])
        store.save_influencer(influencer)

        store.save_campaign(
            Campaign(
                id=str(uuid.uuid4()),
                name=f"{scenario['influencer']} launch",
                influencer_id=influencer.id,
                slug=scenario["slug"],
                promo_code=scenario["promo_code"],
                fixed_cost=scenario["fixed_cost"],
                commission_percent=scenario["commission_percent"],
                status=CampaignStatus.ACTIVE,
            )
        )

        for day in range(DAYS_BACK):
            day_start = now - timedelta(days=day, hours=12)

            # 1. Pixel traffic
            for i in range(scenario["daily_visits"]):
                session_id = f"sess_{uuid.uuid4().hex[:9]}"
                store.record_event(
                    Event(
                        id=str(uuid.uuid4()),
                        campaign_slug=scenario["slug"],
                        event_type=random.choice(
                            [EventType.PAGE_VIEW, EventType.PRODUCT_VIEW]
                        ),
                        session_id=session_id,
                        occurred_at=day_start + timedelta(minutes=i),
                    )
                )

                if random.random() < scenario["cvr"]:
                    store.record_event(
                        Event(
                            id=str(uuid.uuid4()),
                            campaign_slug=scenario["slug"],
                            event_type=EventType.PURCHASE,
                            session_id=session_id,
                            revenue=scenario["aov"] + random.uniform(-5, 5),
                            occurred_at=day_start + timedelta(minutes=i, seconds=30),
                        )
                    )

            # 2. Orders closed with the promo code only
            for i in range(scenario["promo_orders"]):
                store.upsert_order(
                    Order(
                        id=str(uuid.uuid4()),
                        external_order_id=str(random.randint(10**11, 10**12)),
                        total_price=scenario["aov"] + random.uniform(-5, 5),
                        currency="EUR",
                        promo_code=scenario["promo_code"].lower(),
                        occurred_at=day_start + timedelta(hours=i + 1),
                    )
                )

    # Traffic without a tracked link
    store.record_event(
        Event(
            id=str(uuid.uuid4()),
            campaign_slug="unknown",
            event_type=EventType.PAGE_VIEW,
            occurred_at=now,
        )
    )

    conn.close()
    print("Database seeded with demo campaigns.")

if __name__ == "__main__":
    seed_data()
