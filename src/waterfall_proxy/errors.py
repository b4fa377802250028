"""
Error taxonomy for the waterfall proxy.

Fetch failures are typed so callers can fold them into a synthetic line
instead of aborting; StationNotFound is the only error that stops a stream
session from starting.
"""

from typing import Optional


class WaterfallProxyError(Exception):
    """Base class for every error raised by this package."""


class StationNotFound(WaterfallProxyError):
    """The persistence collaborator has no record for the requested station."""

    def __init__(self, station_id: str):
        super().__init__(f"Station not found: {station_id}")
        self.station_id = station_id


class FetchError(WaterfallProxyError):
    """A request against a remote station did not produce usable data."""

    def __init__(self, url: str, message: str, *, status_code: Optional[int] = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.message = message
        self.status_code = status_code


class Unreachable(FetchError):
    """Timeout, connection failure, or an error status on the header endpoint."""


class InvalidResponse(FetchError):
    """Error status or an unusably short body from the data endpoint."""


class ParseFailure(FetchError):
    """The header endpoint answered but its text could not be parsed."""


class AdapterNotFound(FetchError):
    """No registered adapter understands the station URL."""

    def __init__(self, url: str):
        super().__init__(url, "No adapter matches station URL")
