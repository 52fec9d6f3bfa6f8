"""FastAPI REST interface for DVL setup and reconfiguration.

Single-process, single-instrument host owning one DvlController. Every
operation that talks to the device runs under one lock, so the controller
only ever sees one caller at a time.

Error mapping:
- SerialIOError, NotConnected -> 503
- Failed setup / power level exchange -> 502 with failure details
- Other exceptions -> 500
"""

import logging
import os
import subprocess
from pathlib import Path
from threading import RLock
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dvl_lib import DvlController, NotConnected, PowerLevel, SerialIOError
from dvl_lib.commands import sanitize
from dvl_lib.models import ExchangeResult

# =============================================================================
# Environment Configuration
# =============================================================================

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "9160"))
DEFAULT_DVL_URL = os.getenv("DVL_URL", "socket://192.168.0.2:9000")
DEFAULT_SAMPLING_RATE = float(os.getenv("DVL_SAMPLING_RATE", "5.0"))
DEFAULT_SALINITY = float(os.getenv("DVL_SALINITY", "35.0"))
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

API_VERSION = "0.1.0"
try:
    GIT_COMMIT = subprocess.check_output(["git", "rev-parse", "--short", "HEAD"], cwd=Path(__file__).parent.parent, stderr=subprocess.DEVNULL).decode().strip()
except Exception:
    GIT_COMMIT = "unknown"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# =============================================================================
# Global Singletons
# =============================================================================

_controller: Optional[DvlController] = None
_lock = RLock()  # Serializes all device operations

# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="DVL Control API",
    description="REST interface for DVL login, setup and reconfiguration",
    version=API_VERSION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# Request/Response Models
# =============================================================================

class ValueRequest(BaseModel):
    """Request body for POST /salinity and POST /sampling_rate."""
    value: float


class PowerLevelRequest(BaseModel):
    """Request body for POST /power_level."""
    level: Literal["min", "med", "max"]


class StatusResponse(BaseModel):
    """Response for GET /status."""
    connected: bool
    state: str
    mode: str
    url: Optional[str]
    salinity: Optional[float]
    sampling_rate: Optional[float]


class ConnectResponse(BaseModel):
    """Response for POST /connect."""
    status: str
    url: str


class ValueResponse(BaseModel):
    """Response for POST /salinity and POST /sampling_rate."""
    accepted: bool
    value: float


class ExchangeResponse(BaseModel):
    """Outcome of a single device exchange."""
    ok: bool
    command: Optional[str]
    failure: Optional[str]
    expected: str
    received: str


def _exchange_response(result: ExchangeResult) -> ExchangeResponse:
    return ExchangeResponse(
        ok=result.ok,
        command=result.command,
        failure=result.failure.value if result.failure else None,
        expected=sanitize(result.expected),
        received=sanitize(result.received),
    )


def _require_controller() -> DvlController:
    if _controller is None:
        raise NotConnected("Not connected")
    return _controller


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(SerialIOError)
async def serial_io_error_handler(request: Request, exc: SerialIOError):
    """Map SerialIOError to 503 Service Unavailable."""
    logger.error(f"SerialIOError: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(NotConnected)
async def not_connected_handler(request: Request, exc: NotConnected):
    """Map NotConnected to 503 Service Unavailable."""
    logger.error(f"NotConnected: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# =============================================================================
# Read-Only Endpoints
# =============================================================================

@app.get("/status", response_model=StatusResponse)
def get_status():
    """Get connection state, session mode and pending parameters."""
    with _lock:
        if _controller is None:
            return StatusResponse(
                connected=False,
                state="disconnected",
                mode="unknown",
                url=None,
                salinity=None,
                sampling_rate=None,
            )

        return StatusResponse(
            connected=_controller.is_connected(),
            state=_controller.state.value,
            mode=_controller.mode.value,
            url=_controller.url,
            salinity=_controller.salinity,
            sampling_rate=_controller.sampling_rate,
        )


# =============================================================================
# Lifecycle Endpoints
# =============================================================================

@app.post("/connect", response_model=ConnectResponse)
def connect(
    url: str = Query(DEFAULT_DVL_URL, description="pyserial URL, e.g. socket://host:9000")
):
    """Open the link to the DVL and create the controller.

    Raises:
        400: If already connected
        503: If the endpoint cannot be opened (SerialIOError)
    """
    global _controller

    with _lock:
        if _controller is not None:
            raise HTTPException(status_code=400, detail="Already connected. Disconnect first.")

        logger.info(f"Connecting to {url}...")
        _controller = DvlController.open(
            url,
            sampling_rate=DEFAULT_SAMPLING_RATE,
            salinity=DEFAULT_SALINITY,
        )
        return ConnectResponse(status="connected", url=url)


@app.post("/disconnect")
def disconnect():
    """Power the device down (best effort) and close the link."""
    global _controller

    with _lock:
        if _controller is None:
            return {"status": "disconnected"}

        _controller.close()
        _controller = None
        logger.info("Disconnected")
        return {"status": "disconnected"}


@app.post("/reconnect")
def reconnect():
    """Reopen the link after a transport fault; the session must be set up again."""
    with _lock:
        controller = _require_controller()
        controller.reconnect()
        return {"status": "reconnected", "state": controller.state.value}


@app.post("/setup")
def run_setup():
    """Run the full setup sequence (login through start).

    Raises:
        502: If a step fails; detail names the step and the failed exchange
    """
    with _lock:
        controller = _require_controller()
        result = controller.setup()

        if not result:
            detail = {"step": result.failed_step.value}
            if result.exchange is not None:
                detail["exchange"] = _exchange_response(result.exchange).model_dump()
            raise HTTPException(status_code=502, detail=detail)

        return {"status": "measuring", "state": controller.state.value}


# =============================================================================
# Reconfiguration Endpoints
# =============================================================================

@app.post("/salinity", response_model=ValueResponse)
def set_salinity(req: ValueRequest):
    """Update salinity for the next setup; out-of-range values are ignored."""
    with _lock:
        controller = _require_controller()
        accepted = controller.set_salinity(req.value)
        return ValueResponse(accepted=accepted, value=controller.salinity)


@app.post("/sampling_rate", response_model=ValueResponse)
def set_sampling_rate(req: ValueRequest):
    """Update sampling rate for the next setup; out-of-range values are ignored."""
    with _lock:
        controller = _require_controller()
        accepted = controller.set_sampling_rate(req.value)
        return ValueResponse(accepted=accepted, value=controller.sampling_rate)


@app.post("/power_level", response_model=ExchangeResponse)
def set_power_level(req: PowerLevelRequest):
    """Set bottom-track power and restart measurements.

    Raises:
        502: If the power level command was not acknowledged
    """
    with _lock:
        controller = _require_controller()
        result = controller.set_power_level(PowerLevel(req.level))

        if not result:
            raise HTTPException(status_code=502, detail=_exchange_response(result).model_dump())

        return _exchange_response(result)


# =============================================================================
# Health Check
# =============================================================================

@app.get("/")
async def root():
    """Service info."""
    return {
        "service": "DVL Control API",
        "version": API_VERSION,
        "status": "online"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "service": "DVL Control API",
        "version": API_VERSION,
        "status": "online"
    }


@app.get("/version")
async def version():
    """Version tracking endpoint for debugging and compatibility checks."""
    return {
        "api": API_VERSION,
        "git": GIT_COMMIT,
        "status": "online"
    }


# =============================================================================
# Startup/Shutdown Events
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Log startup configuration."""
    logger.info("=" * 60)
    logger.info("DVL Control API started")
    logger.info(f"Version: {API_VERSION}")
    logger.info(f"Git Commit: {GIT_COMMIT}")
    logger.info(f"Host: {API_HOST}")
    logger.info(f"Port: {API_PORT}")
    logger.info(f"Default DVL URL: {DEFAULT_DVL_URL}")
    logger.info(f"Sampling Rate: {DEFAULT_SAMPLING_RATE}")
    logger.info(f"Salinity: {DEFAULT_SALINITY}")
    logger.info(f"CORS Origins: {CORS_ORIGINS}")
    logger.info(f"Log Level: {LOG_LEVEL}")
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    """Power the device down and close the link on shutdown."""
    global _controller

    logger.info("Shutting down DVL Control API...")

    with _lock:
        if _controller is not None:
            logger.info("Closing controller...")
            try:
                _controller.close()
            except Exception as e:
                logger.error(f"Error during shutdown: {e}")
            _controller = None

    logger.info("Shutdown complete")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)
