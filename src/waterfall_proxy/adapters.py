"""
Per-vendor protocol adapters for remote WebSDR stations.

Every station software family publishes its waterfall differently. An adapter
knows how to build the header, data, source and audio URLs for one family,
how to parse its header text into a band layout, and how to decode its raw
waterfall bytes into linear magnitudes.

The registry holds a fixed, ordered list of adapters and returns the first
one whose predicate matches a station URL. Specific adapters must be
registered before generic ones.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence
from urllib.parse import urlencode

import numpy as np

from waterfall_proxy.schema.waterfall import AdapterType, Band, WaterfallHeader

logger = logging.getLogger(__name__)

KIWI_DEFAULT_WF_WIDTH = 1024


@dataclass(frozen=True)
class DecodeProfile:
    """
    8-bit dB convention used to turn waterfall bytes into linear magnitudes.

    A byte equal to ``offset`` maps to 1.0; every ``range_db`` bytes below
    that is one decade down. The defaults are empirically derived, not a
    constant every vendor honours.
    """

    offset: float = 128.0
    range_db: float = 40.0

    def decode(self, data: bytes) -> np.ndarray:
        raw = np.frombuffer(bytes(data), dtype=np.uint8).astype(np.float64)
        return np.clip(np.power(10.0, (raw - self.offset) / self.range_db), 0.0, 1.0)


DEFAULT_DECODE_PROFILE = DecodeProfile()


def _clean_base(base_url: str) -> str:
    return base_url.rstrip("/")


def _to_ws(base_url: str) -> str:
    return re.sub(r"^http", "ws", _clean_base(base_url), count=1)


def _khz(freq_hz: float) -> str:
    text = f"{freq_hz / 1000:.3f}".rstrip("0").rstrip(".")
    return text or "0"


def _allot_pixels(ranges: Sequence[tuple[str, int, int]], total_width: int) -> list[Band]:
    """Lay bands out contiguously across the waterfall width, proportional to bandwidth."""
    spans = [max(end - start, 0) for _, start, end in ranges]
    total_span = sum(spans)
    bands: list[Band] = []
    pixel = 0
    for idx, ((name, start, end), span) in enumerate(zip(ranges, spans)):
        if idx == len(ranges) - 1:
            width = total_width - pixel
        elif total_span > 0:
            width = int(round(total_width * span / total_span))
        else:
            width = total_width // len(ranges)
        end_pixel = min(pixel + width, total_width)
        bands.append(Band(name=name, start_hz=start, end_hz=end, start_pixel=pixel, end_pixel=end_pixel))
        pixel = end_pixel
    return bands


class WebSdrAdapter(ABC):
    """Capability set every station software family implements."""

    adapter_type: AdapterType

    def __init__(self, profile: DecodeProfile = DEFAULT_DECODE_PROFILE):
        self.profile = profile

    @abstractmethod
    def can_handle(self, url: str) -> bool:
        """Whether this adapter understands the station at ``url``."""

    @abstractmethod
    def waterfall_header_url(self, base_url: str) -> str:
        ...

    @abstractmethod
    def waterfall_data_url(self, base_url: str, min_hz: float, max_hz: float, bins: int) -> str:
        ...

    @abstractmethod
    def waterfall_source_url(self, base_url: str) -> str:
        """Vendor waterfall URL handed to clients that want to connect directly."""

    @abstractmethod
    def audio_url(self, base_url: str, frequency_hz: float, mode: str) -> str:
        ...

    @abstractmethod
    def parse_header(self, text: str) -> Optional[WaterfallHeader]:
        """Extract the band layout from header text; None when it cannot be parsed."""

    def unwrap_frame(self, body: bytes) -> bytes:
        """Strip any transport framing from a data response, leaving one byte per bin."""
        return body

    def decode(self, data: bytes) -> np.ndarray:
        """Decode one unsigned byte per bin into linear magnitudes in [0, 1]; keeps the length."""
        return self.profile.decode(data)


class StandardAdapter(WebSdrAdapter):
    """
    PA3FWM-style WebSDR.

    The header endpoint returns script text with indexed assignments::

        bandname[0]="40m"; low[0]=7000; high[0]=7200;
        totalwidth=1024;

    Frequencies are in kHz. Data is raw bytes, one unsigned byte per bin.
    """

    adapter_type = AdapterType.STANDARD

    _NAME_RE = re.compile(r"\b(?:band)?name\s*\[\s*(\d+)\s*\]\s*=\s*(['\"])(.*?)\2", re.IGNORECASE)
    _LOW_RE = re.compile(r"\b(?:band)?low\s*\[\s*(\d+)\s*\]\s*=\s*(-?\d+(?:\.\d+)?)", re.IGNORECASE)
    _HIGH_RE = re.compile(r"\b(?:band)?high\s*\[\s*(\d+)\s*\]\s*=\s*(-?\d+(?:\.\d+)?)", re.IGNORECASE)
    _WIDTH_RE = re.compile(r"\btotal_?(?:band)?width\s*=\s*(\d+)", re.IGNORECASE)

    def can_handle(self, url: str) -> bool:
        lowered = url.lower()
        return ":8901" in lowered or "websdr" in lowered

    def waterfall_header_url(self, base_url: str) -> str:
        return f"{_clean_base(base_url)}/~~waterfalltext"

    def waterfall_data_url(self, base_url: str, min_hz: float, max_hz: float, bins: int) -> str:
        query = urlencode({"min": _khz(min_hz), "max": _khz(max_hz), "bins": bins})
        return f"{_clean_base(base_url)}/~~waterfalldata?{query}"

    def waterfall_source_url(self, base_url: str) -> str:
        return f"{_clean_base(base_url)}/~~waterfall"

    def audio_url(self, base_url: str, frequency_hz: float, mode: str) -> str:
        freq_khz = round(frequency_hz / 1000)
        return f"{_clean_base(base_url)}/~~audiostream?f={freq_khz}&mode={mode.lower()}"

    def parse_header(self, text: str) -> Optional[WaterfallHeader]:
        width_match = self._WIDTH_RE.search(text)
        if not width_match or int(width_match.group(1)) <= 0:
            return None

        names = {int(m.group(1)): m.group(3) for m in self._NAME_RE.finditer(text)}
        lows = {int(m.group(1)): float(m.group(2)) for m in self._LOW_RE.finditer(text)}
        highs = {int(m.group(1)): float(m.group(2)) for m in self._HIGH_RE.finditer(text)}

        ranges = []
        for idx in sorted(set(lows) & set(highs)):
            start_hz = int(round(lows[idx] * 1000))
            end_hz = int(round(highs[idx] * 1000))
            if end_hz <= start_hz:
                logger.debug("Skipping band %d with empty range %d-%d Hz", idx, start_hz, end_hz)
                continue
            ranges.append((names.get(idx, f"band{idx}"), start_hz, end_hz))

        if not ranges:
            return None
        total_width = int(width_match.group(1))
        return WaterfallHeader(bands=_allot_pixels(ranges, total_width), total_width_pixels=total_width)


class KiwiAdapter(WebSdrAdapter):
    """
    KiwiSDR.

    The header is the plain-text ``/status`` page (``key=value`` lines, with
    ``bands=<low>-<high>`` in Hz). Waterfall frames may arrive wrapped in the
    16-byte ``W/F`` frame header, which ``unwrap_frame`` strips before decoding.
    """

    adapter_type = AdapterType.KIWI

    WF_FRAME_TAG = b"W/F"
    WF_FRAME_HEADER_LEN = 16

    _BANDS_RE = re.compile(r"^\s*bands\s*=\s*(\d+)\s*-\s*(\d+)\s*$", re.MULTILINE)
    _NAME_RE = re.compile(r"^\s*name\s*=\s*(.+?)\s*$", re.MULTILINE)
    _WIDTH_RE = re.compile(r"^\s*wf_width\s*=\s*(\d+)\s*$", re.MULTILINE)

    def can_handle(self, url: str) -> bool:
        lowered = url.lower()
        return "kiwisdr" in lowered or ":8073" in lowered

    def waterfall_header_url(self, base_url: str) -> str:
        return f"{_clean_base(base_url)}/status"

    def waterfall_data_url(self, base_url: str, min_hz: float, max_hz: float, bins: int) -> str:
        query = urlencode({"start": int(min_hz), "end": int(max_hz), "bins": bins})
        return f"{_clean_base(base_url)}/kiwi/waterfall?{query}"

    def waterfall_source_url(self, base_url: str) -> str:
        return f"{_to_ws(base_url)}/kiwi/waterfall"

    def audio_url(self, base_url: str, frequency_hz: float, mode: str) -> str:
        return f"{_to_ws(base_url)}/kiwi/audio?f={_khz(frequency_hz)}&mode={mode}"

    def parse_header(self, text: str) -> Optional[WaterfallHeader]:
        bands_match = self._BANDS_RE.search(text)
        if not bands_match:
            return None
        start_hz, end_hz = int(bands_match.group(1)), int(bands_match.group(2))
        if end_hz <= start_hz:
            return None

        name_match = self._NAME_RE.search(text)
        width_match = self._WIDTH_RE.search(text)
        total_width = int(width_match.group(1)) if width_match else KIWI_DEFAULT_WF_WIDTH
        if total_width <= 0:
            total_width = KIWI_DEFAULT_WF_WIDTH
        name = name_match.group(1) if name_match else "HF"
        return WaterfallHeader(
            bands=_allot_pixels([(name, start_hz, end_hz)], total_width),
            total_width_pixels=total_width,
        )

    def unwrap_frame(self, body: bytes) -> bytes:
        if body[:3] == self.WF_FRAME_TAG and len(body) > self.WF_FRAME_HEADER_LEN:
            return body[self.WF_FRAME_HEADER_LEN:]
        return body


class AdapterRegistry:
    """Fixed, ordered set of adapters; the first match wins."""

    def __init__(self, adapters: Sequence[WebSdrAdapter]):
        self._adapters: tuple[WebSdrAdapter, ...] = tuple(adapters)

    @property
    def adapters(self) -> tuple[WebSdrAdapter, ...]:
        return self._adapters

    def select_adapter(self, station_url: str) -> Optional[WebSdrAdapter]:
        for adapter in self._adapters:
            if adapter.can_handle(station_url):
                return adapter
        logger.debug("No adapter matches station URL %s", station_url)
        return None

    def adapter_type(self, station_url: str) -> AdapterType:
        adapter = self.select_adapter(station_url)
        return adapter.adapter_type if adapter else AdapterType.UNKNOWN


def default_registry() -> AdapterRegistry:
    """Kiwi precedes Standard: KiwiSDR hosts often carry "websdr" in their URL too."""
    return AdapterRegistry([KiwiAdapter(), StandardAdapter()])
