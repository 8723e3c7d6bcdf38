"""
Health check endpoints.
"""

import time

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "assistant-core"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check covering the queue scheduler and any configured backends.
    """
    services = request.app.state.services
    checks = {}
    overall_ok = True

    # 1) Response queue
    queue_ok = services.queue.is_running
    checks["response_queue"] = {"ok": queue_ok, "in_flight": services.queue.in_flight}
    overall_ok = overall_ok and queue_ok

    # 2) Redis, when configured
    if services.redis is not None:
        t0 = time.time()
        try:
            redis_ok = await services.redis.ping()
            checks["redis"] = {"ok": redis_ok, "latency_ms": round((time.time() - t0) * 1000, 1)}
        except Exception as e:
            redis_ok = False
            checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = overall_ok and redis_ok

    # 3) Database pool, when configured
    if services.db_pool is not None:
        t0 = time.time()
        try:
            db_health = await services.db_pool.health_check()
            db_ok = db_health.get("healthy", False)
            checks["database"] = {"ok": db_ok, "latency_ms": round((time.time() - t0) * 1000, 1)}
            if not db_ok:
                checks["database"]["error"] = db_health.get("error", "Database unhealthy")
        except Exception as e:
            db_ok = False
            checks["database"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = overall_ok and db_ok

    # 4) Configuration and completion API; a missing key or an unreachable API
    #    degrades replies, not readiness
    try:
        completion_health = await services.completion_client.health_check()
        completion_api = completion_health.get("api_connectivity", "ok")
    except Exception as e:
        completion_api = f"error: {type(e).__name__}"

    checks["configuration"] = {
        "ok": True,
        "completion_configured": services.config.completion_configured(),
        "completion_api": completion_api,
        "environment": services.config.environment,
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
