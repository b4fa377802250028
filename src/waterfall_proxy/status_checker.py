import asyncio
import logging
import time
from typing import Optional

import httpx

from waterfall_proxy.schema.waterfall import StationStatus

logger = logging.getLogger(__name__)

# Some station software rejects HEAD but is otherwise reachable. This may
# classify a few broken servers as online.
HTTP_METHOD_NOT_ALLOWED = 405


class StatusChecker:
    """Bounded HEAD probe against a station's base URL. Never raises."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout_s: float = 5.0) -> None:
        self.timeout_s = timeout_s
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def check(self, station_url: str) -> StationStatus:
        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._client.head(station_url, timeout=self.timeout_s), self.timeout_s
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            error = f"No response within {self.timeout_s:g} s"
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            error = f"{exc.__class__.__name__}: {exc}"
        else:
            latency_ms = (time.perf_counter() - start) * 1000.0
            if response.is_success or response.status_code == HTTP_METHOD_NOT_ALLOWED:
                return StationStatus(online=True, latency_ms=round(latency_ms, 1))
            error = f"HTTP {response.status_code}"

        logger.warning("Station %s is offline: %s", station_url, error)
        return StationStatus(online=False, latency_ms=None, error=error)
