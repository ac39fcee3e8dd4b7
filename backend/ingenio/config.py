"""
Application configuration — single source of truth for environment-driven
settings and budget defaults.

Import from here in routes and services rather than calling os.getenv inline.
The APU engine never imports this module: every percentage it uses travels on
the line item itself.
"""
from __future__ import annotations

import os


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


APP_NAME: str = "Ingenio Estimator API"
APP_VERSION: str = "1.0.0"

# ── Logging ────────────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON: bool = os.getenv("LOG_FORMAT", "json").lower() != "text"

# ── CORS ───────────────────────────────────────────────────────────────────────
_cors_default = "http://localhost:3000,http://localhost:5173"
CORS_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()
]

# ── Offer conditions (presupuestoConfig) defaults ─────────────────────────────
# Applied by normalization when the upstream payload omits them.
DEFAULT_VAT_PCT: float = _env_float("DEFAULT_VAT_PCT", 16.0)          # IVA Venezuela
DEFAULT_ADVANCE_PCT: float = _env_float("DEFAULT_ADVANCE_PCT", 30.0)  # anticipo
DEFAULT_VALIDITY_DAYS: int = _env_int("DEFAULT_VALIDITY_DAYS", 30)    # validez oferta

# ── Upstream price verification ───────────────────────────────────────────────
# Absolute difference above which an AI-asserted price is reported.
PRICE_TOLERANCE: float = _env_float("PRICE_TOLERANCE", 0.01)
