import logging
from datetime import date, datetime, timezone

from pymongo import ASCENDING
from pymongo.asynchronous.database import AsyncDatabase

from trainload.database.repository import AnalyticsRepository, trend_key
from trainload.models.activity import Activity, DerivedFields, Sample
from trainload.models.athlete import ThresholdRecord
from trainload.models.sport import SportMode
from trainload.models.trend import DailyLoad, TrendPoint

logger = logging.getLogger(__name__)


class MongoAnalyticsRepository(AnalyticsRepository):
    """MongoDB implementation of the analytics repository."""

    def __init__(self, db: AsyncDatabase):
        self.db = db
        self.activities_collection = db["activities"]
        self.series_collection = db["activity_series"]
        self.trends_collection = db["trends"]
        self.thresholds_collection = db["thresholds"]

    async def ensure_indexes(self) -> None:
        """Create the indexes the queries below rely on."""
        await self.activities_collection.create_index([("activity_id", ASCENDING)], unique=True)
        await self.activities_collection.create_index(
            [("athlete_id", ASCENDING), ("activity_date", ASCENDING), ("sport_mode", ASCENDING)]
        )
        await self.series_collection.create_index([("activity_id", ASCENDING)], unique=True)
        await self.trends_collection.create_index([("athlete_id", ASCENDING), ("sport", ASCENDING)], unique=True)
        await self.thresholds_collection.create_index([("athlete_id", ASCENDING), ("sport", ASCENDING)])

    # ------------------------------------------------------------------
    # Ingestion side
    # ------------------------------------------------------------------
    async def store_activity(self, activity: Activity) -> bool:
        """
        Store or update an activity.

        The activity date and sport mode are stored alongside so that daily
        loads can be grouped without re-deriving them.
        """
        activity_dict = activity.model_dump(mode="json", exclude={"derived"})
        result = await self.activities_collection.update_one(
            {"activity_id": activity.activity_id},
            {
                "$set": {
                    **activity_dict,
                    "recorded_at": activity.recorded_at,
                    "activity_date": activity.activity_date.isoformat(),
                    "sport_mode": activity.sport_mode.value,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            upsert=True
        )
        return result.acknowledged

    async def store_series(self, activity_id: str, samples: list[Sample]) -> bool:
        """Store the sample series of an activity and bump its series revision."""
        result = await self.series_collection.update_one(
            {"activity_id": activity_id},
            {"$set": {"samples": [s.model_dump(exclude_none=True) for s in samples]}},
            upsert=True
        )
        if result.upserted_id is None:
            await self.activities_collection.update_one(
                {"activity_id": activity_id},
                {"$inc": {"series_revision": 1}}
            )
        return result.acknowledged

    async def add_threshold(self, athlete_id: str, record: ThresholdRecord) -> bool:
        result = await self.thresholds_collection.insert_one({
            "athlete_id": athlete_id,
            **record.model_dump(mode="json"),
        })
        return result.acknowledged

    # ------------------------------------------------------------------
    # AnalyticsRepository
    # ------------------------------------------------------------------
    @staticmethod
    def _to_activity(doc: dict) -> Activity:
        doc.pop("_id", None)
        return Activity(**doc)

    async def get_activity(self, activity_id: str) -> Activity | None:
        doc = await self.activities_collection.find_one({"activity_id": activity_id})
        if doc:
            return self._to_activity(doc)
        return None

    async def list_activities(self, athlete_id: str, sport: SportMode | None = None) -> list[Activity]:
        query: dict = {"athlete_id": athlete_id}
        if sport:
            query["sport_mode"] = sport.value

        cursor = self.activities_collection.find(query).sort([("recorded_at", ASCENDING), ("activity_id", ASCENDING)])
        activities = []
        async for doc in cursor:
            activities.append(self._to_activity(doc))
        return activities

    async def get_series(self, activity_id: str) -> list[Sample] | None:
        doc = await self.series_collection.find_one({"activity_id": activity_id})
        if not doc:
            return None
        return [Sample(**sample) for sample in doc.get("samples", [])]

    async def put_derived_fields(self, activity_id: str, fields: DerivedFields) -> bool:
        result = await self.activities_collection.update_one(
            {"activity_id": activity_id},
            {"$set": {"derived": fields.model_dump(mode="json")}}
        )
        return result.matched_count > 0

    async def get_daily_loads(
        self,
        athlete_id: str,
        start: date,
        end: date,
        sport: SportMode | None = None
    ) -> list[DailyLoad]:
        match: dict = {
            "athlete_id": athlete_id,
            "activity_date": {"$gte": start.isoformat(), "$lte": end.isoformat()},
        }
        if sport:
            match["sport_mode"] = sport.value

        # Activities without a TSS count as unscored rather than as zero load
        pipeline = [
            {"$match": match},
            {"$group": {
                "_id": "$activity_date",
                "tss": {"$sum": {"$ifNull": ["$derived.tss", 0]}},
                "activity_count": {"$sum": 1},
                "unscored_count": {"$sum": {
                    "$cond": [{"$eq": [{"$ifNull": ["$derived.tss", None]}, None]}, 1, 0]
                }},
            }},
            {"$sort": {"_id": 1}},
        ]

        loads = []
        cursor = await self.activities_collection.aggregate(pipeline)
        async for doc in cursor:
            loads.append(DailyLoad(
                date=date.fromisoformat(doc["_id"]),
                tss=float(doc["tss"]),
                sport=sport,
                activity_count=doc["activity_count"],
                unscored_count=doc["unscored_count"],
            ))
        return loads

    async def put_trend(self, athlete_id: str, points: list[TrendPoint], sport: SportMode | None = None) -> bool:
        result = await self.trends_collection.replace_one(
            {"athlete_id": athlete_id, "sport": trend_key(sport)},
            {
                "athlete_id": athlete_id,
                "sport": trend_key(sport),
                "points": [p.model_dump(mode="json") for p in points],
                "updated_at": datetime.now(timezone.utc),
            },
            upsert=True
        )
        logger.debug(f"Stored {len(points)} trend points for athlete {athlete_id} ({trend_key(sport)})")
        return result.acknowledged

    async def get_trend(self, athlete_id: str, sport: SportMode | None = None) -> list[TrendPoint]:
        doc = await self.trends_collection.find_one({"athlete_id": athlete_id, "sport": trend_key(sport)})
        if not doc:
            return []
        return [TrendPoint(**p) for p in doc.get("points", [])]

    async def get_threshold_records(self, athlete_id: str, sport: SportMode | None = None) -> list[ThresholdRecord]:
        query: dict = {"athlete_id": athlete_id}
        if sport:
            query["sport"] = sport.value

        records = []
        async for doc in self.thresholds_collection.find(query):
            doc.pop("_id", None)
            doc.pop("athlete_id", None)
            records.append(ThresholdRecord(**doc))
        return records
