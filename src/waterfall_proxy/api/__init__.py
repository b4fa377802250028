"""
Waterfall Proxy API routers.

This package contains FastAPI routers for MCP-exposed tools:
- streaming: stream info, station status, audio info, header and snapshot lookups
"""
