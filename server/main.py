"""FastAPI WebSocket server for the Up-N-Down card game."""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager

import redis.asyncio as redis
from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from config import config
from handlers import ConnectionContext, ConnectionRegistry, handle_disconnect, process_message
from logging_config import setup_logging
from middleware.ratelimit import RateLimitMiddleware
from room import RoomManager
from routers.health import router as health_router
from routers.health import set_health_dependencies
from routers.rooms import router as rooms_router
from routers.rooms import set_room_dependencies
from services.ratelimit import ActionRateLimiter, RateLimiter

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


# =============================================================================
# Services (initialized in lifespan)
# =============================================================================

_redis_client = None
_rate_limiter = None
_sweep_task = None

room_manager = RoomManager()
connections = ConnectionRegistry()
action_limiter = ActionRateLimiter()


async def _periodic_room_sweep():
    """Periodically delete rooms nobody connected is sitting in."""
    while True:
        try:
            await asyncio.sleep(config.ROOM_SWEEP_INTERVAL_SECONDS)
            room_manager.reap_orphaned_rooms(connections.ids())
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Room sweep failed: {e}")


async def _init_redis():
    """Initialize Redis client and the HTTP rate limiter."""
    global _redis_client, _rate_limiter
    try:
        _redis_client = redis.from_url(config.REDIS_URL, decode_responses=False)
        await _redis_client.ping()
        logger.info("Redis client connected")

        if config.RATE_LIMIT_ENABLED:
            _rate_limiter = RateLimiter(_redis_client)
            logger.info("Rate limiter initialized")
    except Exception as e:
        logger.warning(f"Redis connection failed: {e} - HTTP rate limiting disabled")
        _redis_client = None
        _rate_limiter = None


async def _close_all_websockets():
    """Close all active WebSocket connections gracefully."""
    for ctx in connections.contexts():
        try:
            await ctx.websocket.close(code=1001, reason="Server shutting down")
        except Exception as e:
            logger.debug(f"Close failed for {ctx.connection_id}: {e}")
    logger.info("All WebSocket connections closed")


async def _shutdown_services():
    """Gracefully shut down all services."""
    global _sweep_task, _redis_client, _rate_limiter

    if _sweep_task:
        _sweep_task.cancel()
        try:
            await _sweep_task
        except asyncio.CancelledError:
            pass
        _sweep_task = None
        logger.info("Room sweep task stopped")

    await _close_all_websockets()
    room_manager.rooms.clear()

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        _rate_limiter = None
        logger.info("Redis connection closed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for async service initialization."""
    global _sweep_task

    if config.REDIS_URL:
        await _init_redis()

    set_health_dependencies(
        redis_client=_redis_client,
        room_manager=room_manager,
        connections=connections,
    )
    set_room_dependencies(room_manager=room_manager, connections=connections)

    _sweep_task = asyncio.create_task(_periodic_room_sweep())

    logger.info(f"Up-N-Down server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    await _shutdown_services()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Up-N-Down",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Middleware Setup
# =============================================================================

class LazyRateLimitMiddleware(RateLimitMiddleware):
    """Rate limiting middleware that uses the global _rate_limiter once Redis is up."""

    def __init__(self, app):
        super().__init__(app, rate_limiter=None, enabled=config.RATE_LIMIT_ENABLED)

    async def dispatch(self, request, call_next):
        if _rate_limiter is None:
            return await call_next(request)
        self.limiter = _rate_limiter
        return await super().dispatch(request, call_next)


app.add_middleware(LazyRateLimitMiddleware)


# =============================================================================
# Routers
# =============================================================================

app.include_router(health_router)
app.include_router(rooms_router)


# =============================================================================
# WebSocket
# =============================================================================

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    ctx = ConnectionContext(
        websocket=websocket,
        connection_id=connection_id,
        player_id=connection_id,
    )
    connections.register(ctx)
    logger.debug(f"WebSocket connected as {connection_id}")

    deps = dict(
        room_manager=room_manager,
        connections=connections,
        limiter=action_limiter,
    )

    try:
        await websocket.send_json({"type": "server_ready", "player_id": ctx.player_id})
        while True:
            text = await websocket.receive_text()
            try:
                data = json.loads(text)
            except ValueError:
                data = None
            await process_message(data, ctx, **deps)
    except WebSocketDisconnect:
        pass
    finally:
        await handle_disconnect(ctx, **deps)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Up-N-Down server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
