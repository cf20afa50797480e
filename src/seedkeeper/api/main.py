# Seedkeeper - FastAPI Backend
#
# Local REST API the desktop UI shell talks to. Binds to localhost only;
# every route requires the per-process X-Session-Token.
#
# Background: a poller checks the session timers (inactivity and expiry)
# so an idle wallet locks itself even when the UI stops calling in.

import asyncio
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core import EventSeverity, EventType, get_audit_logger
from . import security
from .backup_routes import router as backup_router
from .security import initialize_session_token
from .vault_routes import get_wallet_vault
from .vault_routes import router as vault_router

logger = logging.getLogger(__name__)

SESSION_POLL_INTERVAL_SEC = 15

# FastAPI app
app = FastAPI(
    title="Seedkeeper API",
    description="Local encrypted seed vault and session manager",
    version=__version__,
)

# Local UI origins only
_allowed_origins = [
    "http://localhost:3000", "http://127.0.0.1:3000",
    "http://localhost:8000", "http://127.0.0.1:8000",
    "tauri://localhost",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(vault_router)
app.include_router(backup_router)


async def _poll_sessions(interval: float = SESSION_POLL_INTERVAL_SEC) -> None:
    """Run the session timers until cancelled."""
    vault = get_wallet_vault()
    while True:
        await asyncio.sleep(interval)
        result = vault.poll()
        if not result.success:
            logger.warning("Session poll failed: %s", result.message)


# Startup/shutdown events
@app.on_event("startup")
async def startup_event():
    """Initialize the session token, restore a remembered session, start the poller."""
    if security._SESSION_TOKEN is None:
        initialize_session_token()

    vault = get_wallet_vault()
    restored = vault.restore_persisted_session()
    if restored.success and restored.value:
        logger.info("Remembered session restored for %s", restored.value["address"])
    elif not restored.success:
        logger.warning("Could not restore remembered session: %s", restored.message)

    app.state.session_poller = asyncio.create_task(_poll_sessions())

    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="Seedkeeper API server started",
        details={"version": __version__},
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the poller and log shutdown."""
    poller: Optional[asyncio.Task] = getattr(app.state, "session_poller", None)
    if poller:
        poller.cancel()
        try:
            await poller
        except asyncio.CancelledError:
            pass

    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_STOP,
        severity=EventSeverity.INFO,
        message="Seedkeeper API server shutting down",
    )


def start_api_server(host: str = "127.0.0.1", port: int = 8000):
    """
    Start FastAPI server.

    Args:
        host: Host to bind to (default: localhost only for security)
        port: Port to listen on
    """
    uvicorn.run(app, host=host, port=port, log_level="info")
