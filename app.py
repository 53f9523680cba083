from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend import RedisRoomStore, RoomStore
from constants import ROOM_TTL_SECONDS, UDP_HOST, UDP_PORT
from dispatcher import UdpServer
from logging_config import get_logger
from routers.rooms import RoomManager
from routers.status import status_router

logger = get_logger(__name__)


def create_app(store: Optional[RoomStore] = None, udp_host: str = UDP_HOST, udp_port: int = UDP_PORT,
               room_ttl: int = ROOM_TTL_SECONDS) -> FastAPI:
    """Build the service. The UDP endpoint and the store live as long as the app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        room_store = store if store is not None else RedisRoomStore.from_settings()
        if not await room_store.ping():
            # rooms degrade to "no such room" until the store comes back
            logger.warning("Room store is not reachable at startup")

        rooms = RoomManager(room_store, ttl=room_ttl)
        udp_server = UdpServer(rooms)
        app.state.store = room_store
        app.state.udp_server = udp_server
        try:
            await udp_server.start(udp_host, udp_port)
            logger.info(f"Rendezvous server started, room idle expiry {room_ttl}s")
            yield
        finally:
            await udp_server.stop()
            await room_store.close()
            logger.info("Rendezvous server shut down")

    app = FastAPI(title="udp-rendezvous", lifespan=lifespan)
    app.include_router(status_router)
    return app


app = create_app()
