"""SignalGate main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from signalgate import __version__
from signalgate.api.deps import validate_auth_config
from signalgate.api.router import health_router, router
from signalgate.api.signalling import router as signalling_router
from signalgate.auth import models as auth_models  # noqa: F401  registers agent_credentials
from signalgate.config import Environment, RelayBackend, settings
from signalgate.db.base import close_db, init_db
from signalgate.relay import close_relay, get_relay
from signalgate.tasks.sweep import start_relay_sweep, stop_relay_sweep

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("signalgate")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting SignalGate server...")
    logger.info(f"Environment: {settings.env.value}")
    logger.info(f"Relay backend: {settings.relay_backend.value}")

    # Validate authentication configuration (fail fast if insecure)
    validate_auth_config()

    if (
        settings.relay_backend == RelayBackend.MEMORY
        and settings.env != Environment.DEVELOPMENT
    ):
        logger.warning(
            "In-memory signalling relay does not share queues between instances; "
            "pin each session to one instance or set SIGNALGATE_RELAY_BACKEND=redis"
        )

    await init_db()
    logger.info("Database initialized")

    await start_relay_sweep(get_relay())
    logger.info("Relay sweep task started")

    yield

    logger.info("Shutting down SignalGate server...")
    await stop_relay_sweep()
    await close_relay()
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title="SignalGate",
    description="Remote control session broker and signalling relay",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed requests are a 400 with the first problem found."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        detail = "Invalid request"
    return JSONResponse(status_code=400, content={"detail": detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# CORS (explicit allowlist, no wildcards with credentials)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)

app.include_router(health_router)
app.include_router(signalling_router)
app.include_router(router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "signalgate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
