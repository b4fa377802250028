"""
FastAPI router for waterfall stream info, station status and audio info.

These endpoints are also exposed via FastMCP so agents can look up stations
and check their reachability. The live stream itself is the WebSocket at
/ws/waterfall/{station_id}.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect

from waterfall_proxy.errors import AdapterNotFound, FetchError, StationNotFound
from waterfall_proxy.schema.waterfall import (
    AudioInfo, StationStatusResponse, StreamInfo, WaterfallHeader, WaterfallLine,
)
from waterfall_proxy.settings import config
from waterfall_proxy.stream_session import SessionState
from waterfall_proxy.waterfall_service import get_waterfall_service

logger = logging.getLogger(__name__)

router = APIRouter()
ws_router = APIRouter()

# Application-defined WebSocket close codes (4000-4999)
WS_CLOSE_BAD_REQUEST = 4400
WS_CLOSE_NOT_FOUND = 4404


@router.get(
    "/info/{station_id}",
    response_model=StreamInfo,
    description="Get the waterfall source URL, proxy URL and adapter type for a station without starting a stream.",
    operation_id="get_stream_info",
)
async def get_stream_info(station_id: str) -> StreamInfo:
    service = get_waterfall_service()
    try:
        return await service.stream_info(station_id)
    except StationNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get(
    "/status/{station_id}",
    response_model=StationStatusResponse,
    description="Probe whether a station is reachable and report its latency. HTTP 405 to the probe counts as online.",
    operation_id="check_station_status",
)
async def check_station_status(station_id: str) -> StationStatusResponse:
    """
    Check station reachability.

    Sends a HEAD request with a 5 second deadline. The result carries
    online/offline, the round-trip latency when online, and a diagnostic
    string when offline. An unknown station id reports offline with
    "Station not found".
    """
    return await get_waterfall_service().check_status(station_id)


@router.get(
    "/audio/{station_id}",
    response_model=AudioInfo,
    description="Get the vendor audio stream URL for a station. Audio is not proxied.",
    operation_id="get_audio_info",
)
async def get_audio_info(
    station_id: str,
    freq: int = Query(..., gt=0, description="Dial frequency in Hz"),
    mode: str = Query(default="USB", description="Demodulation mode: AM, FM, USB, LSB, CW, NFM, WFM"),
) -> AudioInfo:
    service = get_waterfall_service()
    try:
        return await service.audio_info(station_id, freq, mode)
    except (StationNotFound, AdapterNotFound) as exc:
        raise HTTPException(status_code=404, detail=f"Station not found or audio not available: {exc}")


@router.get(
    "/header/{station_id}",
    response_model=WaterfallHeader,
    description="Get the band layout a station advertises in its waterfall header.",
    operation_id="get_waterfall_header",
)
async def get_waterfall_header(station_id: str) -> WaterfallHeader:
    service = get_waterfall_service()
    try:
        return await service.header(station_id)
    except (StationNotFound, AdapterNotFound) as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except FetchError as exc:
        raise HTTPException(status_code=502, detail=str(exc))


@router.get(
    "/snapshot/{station_id}",
    response_model=WaterfallLine,
    description="Get a single waterfall line for a frequency window, falling back to simulated data.",
    operation_id="get_waterfall_snapshot",
)
async def get_waterfall_snapshot(
    station_id: str,
    min_hz: int = Query(default=config.DEFAULT_MIN_HZ, ge=0, description="Window start in Hz"),
    max_hz: int = Query(default=config.DEFAULT_MAX_HZ, gt=0, description="Window end in Hz"),
    use_real: bool = Query(default=True, description="Try the station before falling back to simulated data"),
) -> WaterfallLine:
    """
    Get one waterfall line.

    Use this to initialize a display before connecting to the WebSocket
    stream. The line's ``source`` field tells whether it is real or simulated.
    """
    if max_hz <= min_hz:
        raise HTTPException(status_code=422, detail="max_hz must be greater than min_hz")
    service = get_waterfall_service()
    try:
        return await service.snapshot(station_id, min_hz, max_hz, use_real)
    except StationNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@ws_router.websocket("/ws/waterfall/{station_id}")
async def websocket_waterfall(
    websocket: WebSocket,
    station_id: str,
    min_hz: int = Query(default=config.DEFAULT_MIN_HZ),
    max_hz: int = Query(default=config.DEFAULT_MAX_HZ),
    use_real: bool = Query(default=True),
):
    """
    WebSocket channel streaming normalized waterfall lines for one station.

    Messages:
    - {"type": "info", ...}: stream info, sent once on connect
    - {"type": "header", "data": {...}}: station band layout, when available
    - {"type": "waterfall", "data": {...}}: one line per tick (~30/sec)
    - {"type": "error", "message": "..."}: sent before closing on bad requests
    """
    await websocket.accept()
    service = get_waterfall_service()
    try:
        if max_hz <= min_hz:
            raise ValueError("max_hz must be greater than min_hz")
        station = await service.get_station(station_id)
    except StationNotFound as exc:
        await websocket.send_json({"type": "error", "message": str(exc)})
        await websocket.close(code=WS_CLOSE_NOT_FOUND)
        return
    except ValueError as exc:
        await websocket.send_json({"type": "error", "message": str(exc)})
        await websocket.close(code=WS_CLOSE_BAD_REQUEST)
        return

    info = service.describe(station)
    await websocket.send_json({"type": "info", **info.model_dump(mode="json")})
    logger.info("Starting waterfall stream for station %s, range: %d-%d Hz", station_id, min_hz, max_hz)

    session = await service.open_session(station, min_hz, max_hz, use_real, websocket.send_json)

    try:
        while session.state is SessionState.STREAMING:
            try:
                # Keep the receive loop open to detect disconnects; replies to pings for liveness.
                payload = await websocket.receive_text()
                if payload.strip().lower() == "ping":
                    await websocket.send_json({"type": "pong"})
            except WebSocketDisconnect:
                break
    finally:
        await session.aclose()
