"""
Runtime configuration — single source of truth for environment-driven
settings and pricing defaults.

Import from here in services and routes rather than reading os.environ
directly.
"""
from __future__ import annotations

import os

# Load .env file automatically in dev (no-op if the file is missing)
from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    return float(raw)


# ── Database ───────────────────────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "")
DB_RESET_ON_STARTUP: bool = os.getenv("DB_RESET_ON_STARTUP", "").lower() in ("1", "true", "yes")

# ── Logging ────────────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON: bool = os.getenv("LOG_FORMAT", "json").lower() != "text"

# ── HTTP ───────────────────────────────────────────────────────────────────────
_cors_default = "http://localhost:3000,http://localhost:8000"
CORS_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()
]

# ── Rate lookup I/O budget ─────────────────────────────────────────────────────
# Seconds allowed for the rate-lookup barrier of one instantiation; 0 disables.
RATE_LOOKUP_TIMEOUT_S: float = _env_float("RATE_LOOKUP_TIMEOUT_S", 0.0)

# ── Hauling fallback (projects with a distance but no explicit hauling config) ─
# DPWH standard dump truck rental rate, PHP/hr
DEFAULT_HAULING_RATE: float = _env_float("DEFAULT_HAULING_RATE", 1420.0)
DEFAULT_TRUCK_CAPACITY_CUM: float = _env_float("DEFAULT_TRUCK_CAPACITY_CUM", 6.0)
DEFAULT_FREE_HAULING_KM: float = _env_float("DEFAULT_FREE_HAULING_KM", 3.0)
DEFAULT_SPEED_UNLOADED_KMH: float = 40.0
DEFAULT_SPEED_LOADED_KMH: float = 30.0

# Capacity assumed when a project hauling config omits it
DEFAULT_CONFIG_CAPACITY_CUM: float = 10.0

# Cheapest truck in the equipment master replaces DEFAULT_HAULING_RATE when
# its hourly rate is at least this much
MIN_HAULING_EQUIPMENT_RATE: float = 500.0
