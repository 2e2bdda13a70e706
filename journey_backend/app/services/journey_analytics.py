"""
Journey Analytics Service.

Aggregations over persisted journeys. READ-ONLY.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from journey_backend.app.core.exceptions import InvalidInputError
from journey_backend.app.models.journey import Journey
from journey_backend.app.models.journey_enums import JourneyStatus, JourneyType
from journey_backend.app.models.taxi_rank import TaxiRank
from journey_backend.app.schemas.journey import JourneyStatsResponse, PopularRouteResponse


class JourneyAnalytics:

    @staticmethod
    async def get_journey_stats(
        db: AsyncSession,
        user_id: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None
    ) -> JourneyStatsResponse:
        """Counts per status and type, plus spend and averages over completed journeys."""
        filters = []
        if user_id:
            filters.append(Journey.user_id == user_id)
        if date_from:
            filters.append(Journey.created_at >= date_from)
        if date_to:
            filters.append(Journey.created_at <= date_to)

        # 1. Counts by status
        status_rows = await db.execute(
            select(Journey.status, func.count(Journey.id)).where(*filters).group_by(Journey.status)
        )
        by_status = {status.value: 0 for status in JourneyStatus}
        for status, count in status_rows:
            by_status[JourneyStatus(status).value] = count

        # 2. Counts by type
        type_rows = await db.execute(
            select(Journey.journey_type, func.count(Journey.id)).where(*filters).group_by(Journey.journey_type)
        )
        by_type = {journey_type.value: 0 for journey_type in JourneyType}
        for journey_type, count in type_rows:
            by_type[JourneyType(journey_type).value] = count

        # 3. Completed journeys only
        completed = (await db.execute(
            select(
                func.count(Journey.id),
                func.coalesce(func.sum(Journey.total_fare), 0.0),
                func.coalesce(func.sum(Journey.total_distance_km), 0.0),
                func.avg(Journey.total_fare),
                func.avg(Journey.total_duration_minutes),
                func.avg(Journey.rating),
            ).where(*filters, Journey.status == JourneyStatus.COMPLETED)
        )).one()
        count, fare_sum, distance_sum, avg_fare, avg_duration, avg_rating = completed

        def rounded(value):
            return round(float(value), 2) if value is not None else None

        return JourneyStatsResponse(
            user_id=user_id,
            total_journeys=sum(by_status.values()),
            by_status=by_status,
            by_type=by_type,
            completed_journeys=count or 0,
            total_fare_spent=round(float(fare_sum), 2),
            total_distance_km=round(float(distance_sum), 2),
            average_fare=rounded(avg_fare),
            average_duration_minutes=rounded(avg_duration),
            average_rating=rounded(avg_rating),
        )

    @staticmethod
    async def get_popular_routes(db: AsyncSession, limit: int = 10) -> List[PopularRouteResponse]:
        """Most planned origin/destination pairs that had a route."""
        if limit < 1:
            raise InvalidInputError("limit must be positive", details={"limit": limit})

        origin = aliased(TaxiRank)
        destination = aliased(TaxiRank)
        stmt = select(
            Journey.origin_rank_id,
            origin.name.label("origin_name"),
            Journey.destination_rank_id,
            destination.name.label("destination_name"),
            func.count(Journey.id).label("journey_count"),
            func.avg(Journey.total_fare).label("average_fare"),
        ).join(origin, origin.id == Journey.origin_rank_id)\
         .join(destination, destination.id == Journey.destination_rank_id)\
         .where(Journey.journey_type != JourneyType.NO_ROUTE_FOUND)\
         .group_by(Journey.origin_rank_id, origin.name, Journey.destination_rank_id, destination.name)\
         .order_by(func.count(Journey.id).desc(), Journey.origin_rank_id, Journey.destination_rank_id)\
         .limit(limit)

        results = await db.execute(stmt)

        data = []
        for row in results:
            data.append(PopularRouteResponse(
                origin_rank_id=row.origin_rank_id,
                origin_name=row.origin_name,
                destination_rank_id=row.destination_rank_id,
                destination_name=row.destination_name,
                journey_count=row.journey_count,
                average_fare=round(float(row.average_fare or 0.0), 2)
            ))
        return data
