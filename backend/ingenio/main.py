"""
Ingenio Estimator API v1.0
FastAPI backend that keeps the expediente técnico budget consistent: every
partida produced by the AI generation service or edited in the UI is priced
through the APU cascade before the frontend displays or exports it.
"""
import time
import logging

from dotenv import load_dotenv

# .env must be loaded before ingenio.config reads the environment
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ingenio import config
from ingenio.api.budget_routes import router as budget_router
from ingenio.services.logging_config import setup_logging
from ingenio.services.middleware import RequestTimingMiddleware, SecurityHeadersMiddleware
from ingenio.services.perf_monitor import tracker as perf_tracker

setup_logging(level=config.LOG_LEVEL, json_output=config.LOG_JSON)
logger = logging.getLogger("ingenio-api")

# Record process start time for uptime calculation
_PROCESS_START = time.monotonic()


app = FastAPI(
    title=config.APP_NAME,
    version=config.APP_VERSION,
    description="APU (análisis de precios unitarios) recalculation for AI-generated construction budgets",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Requested-With"],
)
app.add_middleware(SecurityHeadersMiddleware)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

app.include_router(budget_router)

logger.info(
    f"{config.APP_NAME} {config.APP_VERSION} ready "
    f"(IVA {config.DEFAULT_VAT_PCT}%, anticipo {config.DEFAULT_ADVANCE_PCT}%, "
    f"validez {config.DEFAULT_VALIDITY_DAYS} días)"
)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": config.APP_VERSION,
    }


@app.get("/metrics")
async def metrics():
    """In-process budget metrics, sourced from the PerformanceTracker singleton."""
    snapshot = perf_tracker.get_metrics()
    return {
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
        **snapshot,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("ingenio.main:app", host="0.0.0.0", port=8000, reload=True)
