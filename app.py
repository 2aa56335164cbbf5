import json
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from backend import RoomStore, create_redis_client
from connections import ConnectionManager
from constants import CORS_ORIGINS, LOG_LEVEL, LOG_FILE
from logging_config import get_logger, setup_logging
from registry import RoomRegistry
from routers.rooms import api_router
from session import ERROR, RoomSessionProtocol
from signaling import SignalingRelay
from sweeper import LifecycleSweeper

setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(store: RoomStore, registry: Optional[RoomRegistry] = None,
               sweeper: Optional[LifecycleSweeper] = None) -> FastAPI:
    registry = registry or RoomRegistry()
    connections = ConnectionManager()
    relay = SignalingRelay(registry, connections)
    protocol = RoomSessionProtocol(registry, store, connections, relay)
    sweeper = sweeper or LifecycleSweeper(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        yield
        await sweeper.stop()
        await store.redis_client.aclose()
        logger.info("Redis client closed")

    app = FastAPI(lifespan=lifespan)
    app.state.store = store
    app.state.registry = registry
    app.state.connections = connections
    app.state.protocol = protocol
    app.state.sweeper = sweeper

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.include_router(api_router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Room connection. Client and server exchange {"type", "data"} JSON envelopes."""
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        connections.register(connection_id, websocket)
        session = protocol.open_session(connection_id)
        logger.info(f"User connected: {connection_id}")

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.debug(f"Malformed message from connection {connection_id}")
                    await connections.send(connection_id, ERROR, {"message": "Malformed message"})
                    continue
                if not isinstance(message, dict) or not isinstance(message.get("type"), str):
                    await connections.send(connection_id, ERROR, {"message": "Malformed message"})
                    continue
                # one event at a time per connection
                await protocol.handle(session, message["type"], message.get("data"))
        except WebSocketDisconnect:
            logger.info(f"User disconnected: {connection_id}")
        except Exception as e:
            logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
        finally:
            connections.unregister(connection_id)
            await protocol.disconnect(session)

    logger.info("FastAPI application initialized")
    return app


app = create_app(RoomStore(create_redis_client()))
