from fastapi import APIRouter, Request

from constants import SERVER_VERSION
from logging_config import get_logger
from schemas.status import HealthResponse, StatsResponse

logger = get_logger(__name__)

status_router = APIRouter(tags=["status"])


@status_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    store_ok = await request.app.state.store.ping()
    udp_server = request.app.state.udp_server
    udp_address = udp_server.local_address
    if not store_ok:
        logger.warning("Health check: room store unavailable")
    return HealthResponse(
        status="ok" if store_ok and udp_address else "degraded",
        version=".".join(str(part) for part in SERVER_VERSION),
        store="ok" if store_ok else "unavailable",
        udp=f"{udp_address[0]}:{udp_address[1]}" if udp_address else "closed",
    )


@status_router.get("/stats", response_model=StatsResponse)
async def stats(request: Request):
    return StatsResponse(**request.app.state.udp_server.dispatcher.stats.to_dict())
