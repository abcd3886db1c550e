# app/main.py
import logging
import os
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.payout_engine.config.config_manager import ConfigManager
from backend.payout_engine.core.exceptions import (
    InvalidTransitionError,
    PayoutEngineError,
    TrancheNotEligibleError,
)
from backend.payout_engine.utils.logging_utils import setup_logging

from .routers import payouts

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "payout_engine.yaml"

config = ConfigManager(os.getenv("PAYOUT_ENGINE_CONFIG", str(DEFAULT_CONFIG_PATH)))

setup_logging(
    os.getenv("PAYOUT_ENGINE_LOG_LEVEL") or config.log_level(),
    os.getenv("PAYOUT_ENGINE_LOG_FILE"),
    json_output=os.getenv("PAYOUT_ENGINE_LOG_JSON", "").lower() in ("1", "true", "yes"),
)
logger = logging.getLogger(__name__)

# ---------- App ----------
app = FastAPI(
    title="Payout Engine",
    version="1.0.0",
    description="Variable pay, commissions and F&F settlement calculations.",
)

app.state.config = config
app.include_router(payouts.router)


# ---------- Exception Handlers ----------
@app.exception_handler(TrancheNotEligibleError)
async def _not_eligible(request: Request, exc: TrancheNotEligibleError):
    return JSONResponse({"error": str(exc), "eligible_date": exc.eligible_date.isoformat()}, status_code=409)


@app.exception_handler(InvalidTransitionError)
async def _invalid_transition(request: Request, exc: InvalidTransitionError):
    return JSONResponse({"error": str(exc)}, status_code=409)


@app.exception_handler(PayoutEngineError)
async def _engine_error(request: Request, exc: PayoutEngineError):
    logger.error(f"Payout engine error: {exc}")
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.exception_handler(ValueError)
async def _value_error(request: Request, exc: ValueError):
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.get("/health")
async def health():
    return {"status": "ok"}
