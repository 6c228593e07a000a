# SecurePass - FastAPI Backend
#
# REST API for the password manager client:
# - /api/session: session token bootstrap (localhost only)
# - /api/vault/*: master password lifecycle
# - /api/passwords, /api/categories, /api/export: credential management
# - /api/generator: password generation and strength scoring

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core import EventSeverity, EventType, get_audit_logger
from .category_routes import router as category_router
from .generator_routes import router as generator_router
from .password_routes import router as password_router
from .security import get_session_token, initialize_session_token, reset_session_token
from .services import get_services, shutdown_services
from .vault_routes import router as vault_router

logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="SecurePass API",
    description="Password manager API with master-password based encryption",
    version=__version__,
)

# CORS configuration - local development frontends only
_allowed_origins = [
    "http://localhost:3000", "http://127.0.0.1:3000",
    "http://localhost:5000", "http://127.0.0.1:5000",
    "http://localhost:5173", "http://127.0.0.1:5173",
    "http://localhost:8000", "http://127.0.0.1:8000",
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
app.include_router(password_router)
app.include_router(category_router)
app.include_router(generator_router)


@app.on_event("startup")
async def startup_event():
    """Initialize session token and storage on startup."""
    initialize_session_token()
    services = get_services()

    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="SecurePass API server starting",
        details={
            "version": __version__,
            "storage": services.storage.name,
            "cipher_mode": services.settings.cipher_mode,
        },
    )
    logger.info(f"SecurePass API ready ({services.storage.name} storage)")


@app.on_event("shutdown")
async def shutdown_event():
    """Lock every open vault session and release storage."""
    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_STOP,
        severity=EventSeverity.INFO,
        message="SecurePass API server shutting down",
    )
    shutdown_services()
    reset_session_token()


@app.get("/api/session")
async def get_session():
    """
    Get session token for API authentication.

    The frontend calls this once on load and sends the token in the
    X-Session-Token header on every protected call. The token is random
    (256 bits), changes on every restart, and the server binds to
    localhost by default.
    """
    return {
        "session_token": get_session_token()
    }


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "name": "SecurePass API",
        "version": __version__,
        "status": "operational",
    }


def start_api_server(host: str = "127.0.0.1", port: int = 8000):
    """
    Start FastAPI server.

    Args:
        host: Host to bind to (default: localhost only for security)
        port: Port to listen on
    """
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    start_api_server()
