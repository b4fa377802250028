import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastmcp import FastMCP
from fastmcp.server.openapi import RouteMap, MCPType
from starlette.applications import Starlette
from starlette.routing import Mount

from waterfall_proxy import __version__
from waterfall_proxy.api import streaming
from waterfall_proxy.settings import config
from waterfall_proxy.waterfall_service import get_waterfall_service, init_waterfall_service

logger = logging.getLogger(__name__)

fastapi_app = FastAPI(
    title="Waterfall Proxy",
    description="Normalizes waterfall feeds from remote WebSDR and KiwiSDR stations into a single stream format",
    version=__version__,
)

fastapi_app.include_router(streaming.router, prefix="/streaming", tags=["streaming"])
fastapi_app.include_router(streaming.ws_router, tags=["streaming"])


@fastapi_app.get("/health")
async def health():
    return "ok"


mcp = FastMCP.from_fastapi(app=fastapi_app, name="Waterfall MCP", route_maps=[RouteMap(pattern=r"^/health", mcp_type=MCPType.EXCLUDE)])
mcp_app = mcp.http_app()


@asynccontextmanager
async def combined_lifespan(app):
    """Combined lifespan that initializes both MCP and the waterfall service."""
    logger.info("Starting waterfall proxy initialization...")

    try:
        service = init_waterfall_service()
        logger.info("Waterfall service initialized: bins=%d, tick=%.3fs", service.bins, service.tick_interval_s)
    except Exception as e:
        logger.error(f"Waterfall service initialization failed: {e}")
        raise

    async with mcp_app.lifespan(app):
        logger.info("Waterfall proxy ready")
        yield

    logger.info("Shutting down waterfall proxy...")
    try:
        await get_waterfall_service().close()
    except Exception as e:
        logger.error(f"Shutdown error: {e}")
    logger.info("Waterfall proxy shutdown complete")


routes = [Mount("/", app=fastapi_app)]
if config.ENABLE_MCP:
    routes.insert(0, Mount("/llm", app=mcp_app))

app = Starlette(routes=routes, lifespan=combined_lifespan)


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
