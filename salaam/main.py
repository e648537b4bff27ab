"""
Salaam browser - FastAPI application entry point.

Starts the discovery browser on startup and serves the list of discovered
clients over REST plus a WebSocket stream of browser events.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket

from salaam import __version__
from salaam.api.routes import init_routes, router
from salaam.api.websocket import ConnectionManager
from salaam.config import API_HOST, API_PORT, SERVICE_TYPE
from salaam.discovery.service import DiscoveryBrowser

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(browser: DiscoveryBrowser | None = None, service_type: str = SERVICE_TYPE) -> FastAPI:
    """Build the API around ``browser`` (a default browser if omitted)."""
    browser = browser or DiscoveryBrowser()
    ws_manager = ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start/stop the discovery browser."""
        logger.info("Starting Salaam browser services...")
        ws_manager.subscribe(browser)

        if not await browser.start(service_type):
            logger.error(
                f"Discovery browser could not bind UDP port {browser.port}; "
                "serving API without live discovery"
            )
        else:
            logger.info(f"Salaam browser ready, API: {API_HOST}:{API_PORT}, UDP: {browser.port}")

        try:
            yield
        finally:
            logger.info("Shutting down Salaam browser services...")
            browser.close()

    app = FastAPI(
        title="Salaam Browser",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.browser = browser
    app.state.ws_manager = ws_manager

    init_routes(browser)
    app.include_router(router)

    @app.websocket("/ws")
    async def event_stream(websocket: WebSocket):
        """Push browser events; anything the subscriber sends is ignored."""
        await ws_manager.connect(websocket)
        try:
            async for _ in websocket.iter_text():
                pass
        finally:
            ws_manager.disconnect(websocket)

    return app


def main() -> None:
    import uvicorn

    uvicorn.run(
        create_app(),
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )


if __name__ == "__main__":
    main()
