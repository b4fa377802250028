"""
Station lookup against the persistence collaborator.

The proxy only ever reads station records by id. Two backends are provided:
a JSON file (a list of records) for standalone deployments, and the MongoDB
collection the discovery crawler writes to.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from waterfall_proxy.schema.waterfall import Station

logger = logging.getLogger(__name__)


class StationDirectory(Protocol):
    async def get_station(self, station_id: str) -> Optional[Station]:
        ...


def _to_station(record: dict[str, Any]) -> Optional[Station]:
    data = dict(record)
    if "id" not in data and "_id" in data:
        data["id"] = str(data["_id"])
    data.pop("_id", None)
    try:
        return Station.model_validate(data)
    except ValidationError as exc:
        logger.warning("Ignoring malformed station record %s: %s", data.get("id"), exc)
        return None


class InMemoryStationDirectory:
    """Station records held in a dict keyed by id."""

    def __init__(self, stations: Optional[list[Station]] = None) -> None:
        self._stations: dict[str, Station] = {s.id: s for s in stations or []}

    async def get_station(self, station_id: str) -> Optional[Station]:
        return self._stations.get(station_id)

    def __len__(self) -> int:
        return len(self._stations)


class JsonStationDirectory(InMemoryStationDirectory):
    """Station records loaded once from a JSON file holding a list of objects."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        records = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(records, list):
            raise ValueError(f"{self.path} must contain a JSON list of station records")
        stations = [s for s in (_to_station(r) for r in records) if s is not None]
        super().__init__(stations)
        logger.info("Loaded %d stations from %s", len(stations), self.path)


class MongoStationDirectory:
    """Station records read from MongoDB; blocking pymongo calls run in an executor."""

    def __init__(self, uri: str, database: str, collection: str, client=None) -> None:
        if client is None:
            from pymongo import MongoClient

            client = MongoClient(uri, serverSelectionTimeoutMS=5000)
        self._client = client
        self._collection = client[database][collection]

    async def get_station(self, station_id: str) -> Optional[Station]:
        loop = asyncio.get_running_loop()
        record = await loop.run_in_executor(None, self._collection.find_one, {"id": station_id})
        if record is None:
            return None
        return _to_station(record)

    def close(self) -> None:
        self._client.close()


def build_station_directory(settings) -> StationDirectory:
    """Mongo when configured, else the JSON file, else an empty directory."""
    if settings.MONGO_URI:
        logger.info("Using MongoDB station directory %s.%s", settings.MONGO_DATABASE, settings.MONGO_COLLECTION)
        return MongoStationDirectory(settings.MONGO_URI, settings.MONGO_DATABASE, settings.MONGO_COLLECTION)
    if settings.STATIONS_FILE:
        return JsonStationDirectory(settings.STATIONS_FILE)
    logger.warning("No station source configured (MONGO_URI / STATIONS_FILE); every lookup will miss")
    return InMemoryStationDirectory()
