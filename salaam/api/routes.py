"""REST API routes for the discovery browser."""

import logging

from fastapi import APIRouter, HTTPException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# Injected by main.py at startup
_browser = None


def init_routes(browser) -> None:
    """Inject the browser into the routes module."""
    global _browser
    _browser = browser


def _get_browser():
    if _browser is None:
        raise HTTPException(status_code=503, detail="Discovery browser not initialized")
    return _browser


@router.get("/clients")
async def list_clients(service_type: str | None = None):
    """Return the discovered clients, optionally narrowed to one service type."""
    clients = _get_browser().clients()
    if service_type is not None:
        wanted = service_type.casefold()
        clients = [c for c in clients if c.service_type.casefold() == wanted]
    return {"clients": [c.model_dump() for c in clients]}


@router.get("/status")
async def get_status():
    browser = _get_browser()
    return {
        "state": browser.state.value,
        "service_type": browser.service_type,
        "port": browser.port,
        "disappearance_delay": browser.disappearance_delay,
        "receives_self_packets": browser.receives_self_packets,
        "client_count": len(browser.clients()),
    }
