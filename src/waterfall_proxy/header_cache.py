from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from waterfall_proxy.schema.waterfall import WaterfallHeader

logger = logging.getLogger(__name__)

DEFAULT_HEADER_TTL_S = 300.0


@dataclass(frozen=True)
class _CacheEntry:
    header: WaterfallHeader
    fetched_at: float


class HeaderCache:
    """
    Station URL -> parsed waterfall header, with a freshness deadline.

    Entries are replaced wholesale and never mutated, so concurrent writers
    are last-write-wins without locking. Stale entries are dropped lazily on
    read; there is no background sweep.
    """

    def __init__(self, ttl_s: float = DEFAULT_HEADER_TTL_S, clock: Callable[[], float] = time.monotonic):
        if ttl_s <= 0:
            raise ValueError("ttl_s must be positive")
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}

    def get(self, station_url: str) -> Optional[WaterfallHeader]:
        entry = self._entries.get(station_url)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.ttl_s:
            # Only drop the entry we judged stale; a concurrent put may have replaced it.
            if self._entries.get(station_url) is entry:
                del self._entries[station_url]
            logger.debug("Header cache entry for %s expired", station_url)
            return None
        return entry.header

    def put(self, station_url: str, header: WaterfallHeader) -> None:
        self._entries[station_url] = _CacheEntry(header=header, fetched_at=self._clock())

    def invalidate(self, station_url: str) -> None:
        self._entries.pop(station_url, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
