import asyncio
import logging
from typing import Optional

import httpx
import numpy as np

from waterfall_proxy.adapters import AdapterRegistry, WebSdrAdapter
from waterfall_proxy.errors import AdapterNotFound, InvalidResponse, ParseFailure, Unreachable
from waterfall_proxy.header_cache import HeaderCache
from waterfall_proxy.schema.waterfall import LineSource, WaterfallHeader, WaterfallLine

logger = logging.getLogger(__name__)

DEFAULT_BINS = 512
MIN_DATA_BYTES = 10


def resample(magnitudes: np.ndarray, bins: int) -> np.ndarray:
    """Linearly resample a decoded line onto ``bins`` samples."""
    if magnitudes.size == bins:
        return magnitudes
    source_x = np.arange(magnitudes.size)
    target_x = np.linspace(0, magnitudes.size - 1, bins)
    return np.interp(target_x, source_x, magnitudes)


class WaterfallFetcher:
    """
    Deadline-bounded client for station waterfall headers and data.

    Neither operation retries. Every failure surfaces as a FetchError subclass
    so the caller decides what to substitute; nothing here is fatal to a
    stream session.

    Protocol (HTTP GET, vendor URLs built by the adapter):
      header: adapter-specific text -> WaterfallHeader, cached per station URL
      data:   raw bytes, one unsigned byte per bin -> linear magnitudes
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        cache: HeaderCache,
        *,
        client: Optional[httpx.AsyncClient] = None,
        header_timeout_s: float = 5.0,
        data_timeout_s: float = 3.0,
        bins: int = DEFAULT_BINS,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.header_timeout_s = header_timeout_s
        self.data_timeout_s = data_timeout_s
        self.bins = bins
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _require_adapter(self, station_url: str) -> WebSdrAdapter:
        adapter = self.registry.select_adapter(station_url)
        if adapter is None:
            raise AdapterNotFound(station_url)
        return adapter

    async def _get(self, url: str, timeout_s: float) -> httpx.Response:
        try:
            return await asyncio.wait_for(self._client.get(url, timeout=timeout_s), timeout_s)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise Unreachable(url, f"No response within {timeout_s:g} s") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise Unreachable(url, f"{exc.__class__.__name__}: {exc}") from exc

    async def fetch_header(self, station_url: str) -> WaterfallHeader:
        """
        Return the station's band layout, from cache when fresh.

        Failures are never cached; the next call tries the network again.
        """
        adapter = self._require_adapter(station_url)

        cached = self.cache.get(station_url)
        if cached is not None:
            return cached

        header_url = adapter.waterfall_header_url(station_url)
        response = await self._get(header_url, self.header_timeout_s)
        if not response.is_success:
            raise Unreachable(header_url, f"HTTP {response.status_code}", status_code=response.status_code)

        header = adapter.parse_header(response.text)
        if header is None:
            raise ParseFailure(header_url, "Waterfall header could not be parsed")

        self.cache.put(station_url, header)
        logger.info("Cached waterfall header for %s (%d bands)", station_url, len(header.bands))
        return header

    async def fetch_line(
        self, station_url: str, min_hz: float, max_hz: float, bins: Optional[int] = None
    ) -> WaterfallLine:
        """Fetch and decode one waterfall line for the window [min_hz, max_hz)."""
        bins = self.bins if bins is None else bins
        if bins <= 0:
            raise ValueError("bins must be positive")
        if max_hz <= min_hz:
            raise ValueError("max_hz must be greater than min_hz")

        adapter = self._require_adapter(station_url)
        data_url = adapter.waterfall_data_url(station_url, min_hz, max_hz, bins)
        response = await self._get(data_url, self.data_timeout_s)
        if not response.is_success:
            raise InvalidResponse(data_url, f"HTTP {response.status_code}", status_code=response.status_code)

        body = response.content
        if len(body) < MIN_DATA_BYTES:
            raise InvalidResponse(data_url, f"Body too short ({len(body)} bytes)")

        magnitudes = adapter.decode(adapter.unwrap_frame(body))
        if magnitudes.size != bins:
            logger.debug("Resampling %d decoded bins onto %d for %s", magnitudes.size, bins, station_url)
            magnitudes = resample(magnitudes, bins)

        return WaterfallLine(
            freq_start_hz=min_hz,
            freq_step_hz=(max_hz - min_hz) / bins,
            magnitudes=np.clip(magnitudes, 0.0, 1.0).tolist(),
            source=LineSource.REAL,
        )
