# app/routes/health.py
"""
Liveness and readiness endpoints.
Readiness covers the discovery cache (Redis), the page configuration store
and whether catalog credentials can be resolved at all.
"""

import time
from typing import Any

from fastapi import APIRouter

from app.config import settings
from app.db.pool import db_health_check
from app.services.infrastructure.redis_client import fast_redis

router = APIRouter()


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 1)


async def _check_redis() -> dict[str, Any]:
    started = time.monotonic()
    required = settings.DISCOVERY_CACHE_BACKEND == "redis"
    try:
        ok = bool(await fast_redis.ping())
    except Exception as e:
        return {"ok": False, "required": required, "error": f"{type(e).__name__}: {e}"}
    return {"ok": ok, "required": required, "latency_ms": _elapsed_ms(started)}


async def _check_database() -> dict[str, Any]:
    started = time.monotonic()
    try:
        db_health = await db_health_check()
    except Exception as e:
        return {"ok": False, "error": f"{type(e).__name__}: {e}", "latency_ms": _elapsed_ms(started)}

    check = {
        "ok": bool(db_health.get("healthy")),
        "configured": db_health.get("configured", True),
        "latency_ms": _elapsed_ms(started),
    }
    if "pool_stats" in db_health:
        check["pool_stats"] = db_health["pool_stats"]
    if not check["ok"]:
        check["error"] = db_health.get("error", "Database unhealthy")
    return check


def _check_configuration() -> dict[str, Any]:
    # Without a page config store every request relies on the global catalog defaults
    issues = []
    if not settings.database_configured():
        if not settings.CATALOG_API_KEY:
            issues.append("No catalog API key and no page configuration store")
        if not settings.CATALOG_DEFAULT_ORG_IDS:
            issues.append("No default organization ids and no page configuration store")
    return {"ok": not issues, "issues": issues or None, "environment": settings.environment}


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "discovery-events"}


@router.get("/readyz")
async def readyz():
    checks = {
        "redis": await _check_redis(),
        "database": await _check_database(),
        "configuration": _check_configuration(),
    }
    overall_ok = (
        (checks["redis"]["ok"] or not checks["redis"]["required"])
        and checks["database"]["ok"]
        and checks["configuration"]["ok"]
    )
    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()
