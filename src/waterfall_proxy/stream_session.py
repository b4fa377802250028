from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from waterfall_proxy.errors import FetchError
from waterfall_proxy.schema.waterfall import LineSource, Station, WaterfallLine
from waterfall_proxy.simulator import SimulatedLineGenerator
from waterfall_proxy.waterfall_fetcher import DEFAULT_BINS, WaterfallFetcher

logger = logging.getLogger(__name__)

Sender = Callable[[dict[str, Any]], Awaitable[None]]

DEFAULT_TICK_INTERVAL_S = 0.033


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    CLOSED = "closed"


async def produce_line(
    fetcher: WaterfallFetcher,
    generator: SimulatedLineGenerator,
    station_url: str,
    min_hz: float,
    max_hz: float,
    bins: int,
    use_real: bool,
) -> WaterfallLine:
    """Try the station first when asked to, then fall back to a synthetic line."""
    if use_real:
        try:
            return await fetcher.fetch_line(station_url, min_hz, max_hz, bins)
        except FetchError as exc:
            logger.debug("Substituting simulated line for %s: %s", station_url, exc)
    return generator.generate(min_hz, max_hz, bins)


class StreamSession:
    """
    Per-client waterfall stream: Idle -> Streaming -> Closed.

    One line per tick, emitted in tick order. A line is dropped when the
    previous send has not finished yet; overrun ticks are skipped, never
    caught up. Fetch failures turn into synthetic lines and never end the
    session.
    """

    def __init__(
        self,
        station: Station,
        min_hz: float,
        max_hz: float,
        *,
        send: Sender,
        fetcher: WaterfallFetcher,
        generator: SimulatedLineGenerator,
        use_real: bool = True,
        bins: int = DEFAULT_BINS,
        interval_s: float = DEFAULT_TICK_INTERVAL_S,
        on_closed: Optional[Callable[["StreamSession"], None]] = None,
    ) -> None:
        if max_hz <= min_hz:
            raise ValueError("max_hz must be greater than min_hz")
        if bins <= 0:
            raise ValueError("bins must be positive")
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.station = station
        self.min_hz = min_hz
        self.max_hz = max_hz
        self.use_real = use_real
        self.bins = bins
        self.interval_s = interval_s
        self._send = send
        self._fetcher = fetcher
        self._generator = generator
        self._on_closed = on_closed
        self._state = SessionState.IDLE
        self._closed = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._pending_send: Optional[asyncio.Task] = None
        self._header_task: Optional[asyncio.Task] = None

        self.lines_emitted = 0
        self.lines_dropped = 0
        self.fallback_count = 0
        self.ticks_skipped = 0

    @property
    def state(self) -> SessionState:
        return self._state

    async def open(self) -> None:
        """Enter Streaming and start the tick loop."""
        if self._state is not SessionState.IDLE:
            raise RuntimeError(f"Cannot open a session in state {self._state.value}")
        self._state = SessionState.STREAMING
        self._task = asyncio.create_task(self._run())
        logger.info(
            "Stream session opened for station %s (%s-%s Hz, use_real=%s)",
            self.station.id, self.min_hz, self.max_hz, self.use_real,
        )

    def close(self) -> None:
        """Stop ticking. An in-flight fetch may finish; its line is discarded."""
        if self._state is SessionState.CLOSED:
            return
        self._state = SessionState.CLOSED
        self._closed.set()
        if self._header_task is not None and not self._header_task.done():
            self._header_task.cancel()
        logger.info(
            "Stream session closed for station %s: emitted=%d dropped=%d fallback=%d skipped=%d",
            self.station.id, self.lines_emitted, self.lines_dropped, self.fallback_count, self.ticks_skipped,
        )
        if self._on_closed is not None:
            self._on_closed(self)

    async def aclose(self) -> None:
        """Close and wait for the tick loop to wind down."""
        self.close()
        await self.wait_closed()

    async def wait_closed(self) -> None:
        for task in (self._task, self._header_task):
            if task is None:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        if self.use_real:
            # Ticks do not wait for the header.
            self._header_task = asyncio.create_task(self._warm_header())

        next_tick = loop.time()
        while self._state is SessionState.STREAMING:
            line = await self._next_line()
            if self._state is not SessionState.STREAMING:
                break
            self._emit({"type": "waterfall", "data": line.model_dump(mode="json")})

            next_tick += self.interval_s
            now = loop.time()
            if next_tick < now:
                missed = int((now - next_tick) // self.interval_s) + 1
                self.ticks_skipped += missed
                next_tick += missed * self.interval_s
            try:
                await asyncio.wait_for(self._closed.wait(), timeout=next_tick - now)
            except asyncio.TimeoutError:
                pass

    async def _warm_header(self) -> None:
        try:
            header = await self._fetcher.fetch_header(self.station.url)
        except FetchError as exc:
            logger.debug("No waterfall header for %s: %s", self.station.url, exc)
            return
        except Exception:
            logger.exception("Waterfall header warm-up failed for station %s", self.station.id)
            return
        # Wait for the send slot instead of being dropped like a line.
        while self._pending_send is not None and not self._pending_send.done():
            await asyncio.wait({self._pending_send})
        if self._state is SessionState.STREAMING:
            self._emit({"type": "header", "data": header.model_dump(mode="json")})

    async def _next_line(self) -> WaterfallLine:
        try:
            line = await produce_line(
                self._fetcher, self._generator, self.station.url,
                self.min_hz, self.max_hz, self.bins, self.use_real,
            )
        except Exception:
            logger.exception("Waterfall tick failed for station %s", self.station.id)
            line = self._generator.generate(self.min_hz, self.max_hz, self.bins)
        if self.use_real and line.source is LineSource.SIMULATED:
            self.fallback_count += 1
        return line

    def _emit(self, event: dict[str, Any]) -> None:
        if self._pending_send is not None and not self._pending_send.done():
            self.lines_dropped += 1
            return
        self._pending_send = asyncio.create_task(self._send(event))
        self._pending_send.add_done_callback(self._on_send_done)
        if event["type"] == "waterfall":
            self.lines_emitted += 1

    def _on_send_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.info("Transport for station %s rejected a send (%s); closing session", self.station.id, exc)
            self.close()
