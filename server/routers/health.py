"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (can the app handle requests?)
- /metrics - Room and connection counts for monitoring
"""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_redis_client = None
_room_manager = None
_connections = None


def set_health_dependencies(
    redis_client=None,
    room_manager=None,
    connections=None,
):
    """Set dependencies for health checks."""
    global _redis_client, _room_manager, _connections
    _redis_client = redis_client
    _room_manager = room_manager
    _connections = connections


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    Always 200 while the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - can the app handle requests?

    Redis is optional; it only counts against readiness when configured.
    """
    checks = {}
    overall_healthy = True

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            checks["redis"] = {"status": "ok"}
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            checks["redis"] = {"status": "error", "message": str(e)}
            overall_healthy = False
    else:
        checks["redis"] = {"status": "not_configured"}

    checks["rooms"] = {"status": "ok" if _room_manager is not None else "not_configured"}

    return Response(
        content=json.dumps({
            "status": "ok" if overall_healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
        status_code=200 if overall_healthy else 503,
        media_type="application/json",
    )


@router.get("/metrics")
async def metrics():
    """Operational counters for dashboards and alerting."""
    metrics_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if _room_manager is not None:
        room_stats = _room_manager.stats()
        metrics_data.update({
            "active_rooms": room_stats["total"],
            "rooms_by_phase": {k: v for k, v in room_stats.items() if k != "total"},
            "total_players": sum(len(r.state.players) for r in _room_manager.rooms.values()),
        })

    if _connections is not None:
        metrics_data["connected_websockets"] = len(_connections)

    return metrics_data
