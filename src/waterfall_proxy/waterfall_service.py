"""
Waterfall service wiring adapters, header cache, fetcher, generator, status
probe and station lookup together.

This is the single object the API routers talk to. It resolves station ids
through the persistence collaborator, answers the info/status/audio queries
and opens stream sessions.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from waterfall_proxy.adapters import AdapterRegistry, default_registry
from waterfall_proxy.errors import AdapterNotFound, StationNotFound
from waterfall_proxy.header_cache import HeaderCache
from waterfall_proxy.schema.waterfall import (
    AdapterType, AudioInfo, Station, StationStatus, StationStatusResponse, StreamInfo,
    WaterfallHeader, WaterfallLine,
)
from waterfall_proxy.simulator import SimulatedLineGenerator
from waterfall_proxy.stations import StationDirectory, build_station_directory
from waterfall_proxy.status_checker import StatusChecker
from waterfall_proxy.stream_session import (
    DEFAULT_TICK_INTERVAL_S, Sender, StreamSession, produce_line,
)
from waterfall_proxy.waterfall_fetcher import DEFAULT_BINS, WaterfallFetcher

logger = logging.getLogger(__name__)

PROXY_PATH = "/ws/waterfall"


class WaterfallService:
    """Façade over the waterfall proxy components."""

    def __init__(
        self,
        stations: StationDirectory,
        *,
        registry: Optional[AdapterRegistry] = None,
        fetcher: Optional[WaterfallFetcher] = None,
        generator: Optional[SimulatedLineGenerator] = None,
        status_checker: Optional[StatusChecker] = None,
        bins: int = DEFAULT_BINS,
        tick_interval_s: float = DEFAULT_TICK_INTERVAL_S,
    ) -> None:
        self.stations = stations
        self.registry = registry or (fetcher.registry if fetcher else default_registry())
        self.fetcher = fetcher or WaterfallFetcher(self.registry, HeaderCache(), bins=bins)
        self.generator = generator or SimulatedLineGenerator()
        self.status_checker = status_checker or StatusChecker()
        self.bins = bins
        self.tick_interval_s = tick_interval_s
        self._sessions: set[StreamSession] = set()

    @classmethod
    def from_settings(cls, settings) -> "WaterfallService":
        registry = default_registry()
        fetcher = WaterfallFetcher(
            registry,
            HeaderCache(ttl_s=settings.HEADER_TTL_S),
            header_timeout_s=settings.HEADER_TIMEOUT_S,
            data_timeout_s=settings.DATA_TIMEOUT_S,
            bins=settings.WATERFALL_BINS,
        )
        return cls(
            build_station_directory(settings),
            registry=registry,
            fetcher=fetcher,
            status_checker=StatusChecker(timeout_s=settings.STATUS_TIMEOUT_S),
            bins=settings.WATERFALL_BINS,
            tick_interval_s=settings.TICK_INTERVAL_S,
        )

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    async def get_station(self, station_id: str) -> Station:
        station = await self.stations.get_station(station_id)
        if station is None:
            logger.warning("Station not found: %s", station_id)
            raise StationNotFound(station_id)
        return station

    async def stream_info(self, station_id: str) -> StreamInfo:
        return self.describe(await self.get_station(station_id))

    def describe(self, station: Station) -> StreamInfo:
        """Stream info for an already resolved station."""
        station_id = station.id
        proxy_url = f"{PROXY_PATH}/{station_id}"
        adapter = self.registry.select_adapter(station.url)
        if adapter is None:
            logger.warning("No adapter found for URL: %s", station.url)
            return StreamInfo(
                station_id=station_id,
                waterfall_source_url=station.url,
                proxy_url=proxy_url,
                adapter_type=AdapterType.UNKNOWN,
            )
        return StreamInfo(
            station_id=station_id,
            waterfall_source_url=adapter.waterfall_source_url(station.url),
            proxy_url=proxy_url,
            adapter_type=adapter.adapter_type,
        )

    async def audio_info(self, station_id: str, frequency_hz: int, mode: str = "USB") -> AudioInfo:
        station = await self.get_station(station_id)
        adapter = self.registry.select_adapter(station.url)
        if adapter is None:
            raise AdapterNotFound(station.url)
        return AudioInfo(
            station_id=station_id,
            frequency_hz=frequency_hz,
            mode=mode,
            stream_url=adapter.audio_url(station.url, frequency_hz, mode),
            proxy_available=False,
            message="Audio proxy not available. Use stream_url directly if CORS allows.",
        )

    async def check_status(self, station_id: str) -> StationStatusResponse:
        """Reachability of a station; an unknown id reports offline instead of raising."""
        try:
            station = await self.get_station(station_id)
        except StationNotFound:
            status = StationStatus(online=False, latency_ms=None, error="Station not found")
        else:
            status = await self.status_checker.check(station.url)
        return StationStatusResponse(
            station_id=station_id,
            checked_at=datetime.now(tz=timezone.utc),
            **status.model_dump(),
        )

    async def header(self, station_id: str) -> WaterfallHeader:
        station = await self.get_station(station_id)
        return await self.fetcher.fetch_header(station.url)

    async def snapshot(self, station_id: str, min_hz: float, max_hz: float, use_real: bool = True) -> WaterfallLine:
        station = await self.get_station(station_id)
        return await produce_line(
            self.fetcher, self.generator, station.url, min_hz, max_hz, self.bins, use_real
        )

    async def open_session(
        self, station: Station, min_hz: float, max_hz: float, use_real: bool, send: Sender
    ) -> StreamSession:
        """Start streaming for a station resolved through ``get_station``."""
        session = StreamSession(
            station,
            min_hz,
            max_hz,
            send=send,
            fetcher=self.fetcher,
            generator=self.generator,
            use_real=use_real,
            bins=self.bins,
            interval_s=self.tick_interval_s,
            on_closed=self._sessions.discard,
        )
        self._sessions.add(session)
        await session.open()
        return session

    async def close(self) -> None:
        for session in list(self._sessions):
            await session.aclose()
        await self.fetcher.aclose()
        await self.status_checker.aclose()
        close_stations = getattr(self.stations, "close", None)
        if close_stations is not None:
            close_stations()
        logger.info("Waterfall service closed")


# Singleton instance for use by the FastAPI app
_waterfall_service: Optional[WaterfallService] = None


def get_waterfall_service() -> WaterfallService:
    """Get or create the singleton waterfall service."""
    global _waterfall_service
    if _waterfall_service is None:
        from waterfall_proxy.settings import config

        _waterfall_service = WaterfallService.from_settings(config)
    return _waterfall_service


def init_waterfall_service(service: Optional[WaterfallService] = None) -> WaterfallService:
    """Install ``service`` (or one built from settings) as the singleton."""
    global _waterfall_service
    if service is None:
        from waterfall_proxy.settings import config

        service = WaterfallService.from_settings(config)
    _waterfall_service = service
    return _waterfall_service
