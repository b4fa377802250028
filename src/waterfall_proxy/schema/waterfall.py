"""
Pydantic schemas for waterfall streaming.

These schemas define the normalized line format pushed to clients and the
API contracts for stream info, station status and audio info queries.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AdapterType(str, Enum):
    """Station software family resolved from the station URL."""
    STANDARD = "standard"
    KIWI = "kiwi"
    UNKNOWN = "unknown"


class LineSource(str, Enum):
    """Where a waterfall line's samples came from."""
    REAL = "real"
    SIMULATED = "simulated"


class Station(BaseModel):
    """Station record as returned by the persistence collaborator."""

    id: str = Field(..., description="Station identifier")
    url: str = Field(..., description="Base URL of the station's web interface")
    name: str = Field(..., description="Human-readable station name")
    latitude: Optional[float] = Field(None, description="Station latitude in degrees")
    longitude: Optional[float] = Field(None, description="Station longitude in degrees")


class Band(BaseModel):
    """One band advertised by a station's waterfall header."""

    name: str = Field(..., description="Band label as published by the station")
    start_hz: int = Field(..., description="Lowest frequency covered by the band")
    end_hz: int = Field(..., description="Highest frequency covered by the band")
    start_pixel: int = Field(..., ge=0, description="First waterfall pixel column of the band")
    end_pixel: int = Field(..., ge=0, description="Last waterfall pixel column of the band (exclusive)")


class WaterfallHeader(BaseModel):
    """Band layout of a station's waterfall."""

    bands: list[Band] = Field(..., description="Bands ordered by station index")
    total_width_pixels: int = Field(..., gt=0, description="Total waterfall width in pixels")


class WaterfallLine(BaseModel):
    """A single normalized waterfall line ready for streaming."""

    timestamp_ms: int = Field(
        default_factory=lambda: int(datetime.now(tz=timezone.utc).timestamp() * 1000),
        description="Line time in milliseconds since epoch.",
    )
    freq_start_hz: float = Field(..., description="Frequency of the first bin.")
    freq_step_hz: float = Field(..., gt=0, description="Frequency width of one bin.")
    magnitudes: list[float] = Field(
        ..., description="Linear magnitudes in [0, 1] ordered from low to high frequency bins."
    )
    source: LineSource = Field(LineSource.REAL, description="Whether samples are real or simulated.")


class StreamInfo(BaseModel):
    """Where a station's waterfall comes from and how to stream it through the proxy."""

    station_id: str = Field(..., description="Station identifier")
    waterfall_source_url: str = Field(..., description="Vendor waterfall URL (station URL when unknown)")
    proxy_url: str = Field(..., description="Proxy endpoint streaming normalized lines")
    adapter_type: AdapterType = Field(..., description="Resolved station software family")


class StationStatus(BaseModel):
    """Result of a bounded reachability probe."""

    online: bool = Field(..., description="Whether the station answered the probe")
    latency_ms: Optional[float] = Field(None, description="Round-trip time of the probe")
    error: Optional[str] = Field(None, description="Diagnostic when the station is offline")


class StationStatusResponse(StationStatus):
    """Status probe result stamped with the time it was taken."""

    station_id: str = Field(..., description="Station identifier")
    checked_at: datetime = Field(..., description="UTC time of the probe")


class AudioInfo(BaseModel):
    """Pointer to a vendor audio stream; audio itself is not proxied."""

    station_id: str = Field(..., description="Station identifier")
    frequency_hz: int = Field(..., description="Requested dial frequency")
    mode: str = Field(..., description="Requested demodulation mode")
    stream_url: str = Field(..., description="Vendor audio stream URL")
    proxy_available: bool = Field(False, description="Whether the proxy can relay the audio itself")
    message: str = Field(..., description="Guidance for clients")
