"""
Database seeding script for a sample transit network.

Creates a handful of Johannesburg-area taxi ranks and the routes between
them, then bumps the network version so running workers rebuild their graph.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from journey_backend.app.db.session import AsyncSessionLocal, engine, Base
from journey_backend.app.models.taxi_rank import TaxiRank
from journey_backend.app.models.transit_route import TransitRoute
from journey_backend.app.models.journey import Journey  # noqa: F401 (registers table)
from journey_backend.app.models.route_connection import RouteConnection  # noqa: F401
from journey_backend.app.models.audit_log import AuditLog  # noqa: F401
from journey_backend.app.models.journey_enums import RouteType
from journey_backend.app.services.graph_cache import network_graph_cache
from sqlalchemy import select


RANKS = [
    ("Bree Street Taxi Rank", -26.2003, 28.0377, "Johannesburg", 400),
    ("Noord Street Taxi Rank", -26.1972, 28.0456, "Johannesburg", 350),
    ("Baragwanath Taxi Rank", -26.2617, 27.9427, "Soweto", 500),
    ("Randburg Taxi Rank", -26.0936, 28.0064, "Randburg", 150),
    ("Alexandra Pan Africa Rank", -26.1022, 28.0960, "Alexandra", 300),
    ("Sandton Gautrain Rank", -26.1076, 28.0567, "Sandton", 120),
]


async def seed_network():
    """
    Seed ranks and routes.

    Creates:
    - 6 taxi ranks
    - direct routes, one multi-stop route and a bidirectional shuttle
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("Starting network seeding...")

        existing = (await db.execute(select(TaxiRank).limit(1))).scalar_one_or_none()
        if existing:
            print("Ranks already exist, skipping seeding")
            return

        ranks = []
        for name, lat, lng, city, capacity in RANKS:
            rank = TaxiRank(
                name=name,
                latitude=lat,
                longitude=lng,
                city=city,
                province="Gauteng",
                capacity=capacity,
                facilities={"shelter": True, "toilets": capacity >= 300},
            )
            db.add(rank)
            ranks.append(rank)
        await db.flush()

        bree, noord, bara, randburg, alex, sandton = [rank.id for rank in ranks]

        routes = [
            TransitRoute(route_name="Bree - Baragwanath", origin_rank_id=bree, destination_rank_id=bara,
                         fare=16.0, duration_minutes=35, distance_km=15.2, is_bidirectional=True),
            TransitRoute(route_name="Noord - Alexandra", origin_rank_id=noord, destination_rank_id=alex,
                         fare=14.0, duration_minutes=30, distance_km=12.5, transfer_time_minutes=5),
            TransitRoute(route_name="Alexandra - Sandton", origin_rank_id=alex, destination_rank_id=sandton,
                         fare=10.0, duration_minutes=12, distance_km=4.1, is_bidirectional=True),
            TransitRoute(
                route_name="Bree - Randburg via Noord", origin_rank_id=bree, destination_rank_id=randburg,
                fare=22.0, duration_minutes=45, distance_km=16.0, is_direct=False,
                route_points=[bree, {"rank_id": noord, "fare": 6.0}, randburg],
            ),
            TransitRoute(route_name="Walkway Bree - Noord", origin_rank_id=bree, destination_rank_id=noord,
                         fare=0.0, duration_minutes=10, distance_km=0.8, route_type=RouteType.WALKING,
                         is_bidirectional=True),
        ]
        db.add_all(routes)
        await db.commit()
        print(f"Created {len(ranks)} ranks and {len(routes)} routes")

    version = await network_graph_cache.invalidate()
    print(f"Network version bumped to {version}")


if __name__ == "__main__":
    asyncio.run(seed_network())
