from typing import Awaitable, Callable

from errors import RelayRejected, RoomNotFound
from logging_config import get_logger
from routers.rooms import RoomManager
from schemas.envelope import PROTOCOL_RELAY, Envelope, PeerAddress, RelayEnvelope

logger = get_logger(__name__)

SendEnvelope = Callable[[Envelope, PeerAddress], Awaitable[bool]]


class RelayForwarder:
    """Forwards relay envelopes between peers registered in the same room.

    The destination must be a member of the room as seen by the sender, so the
    server cannot be pointed at arbitrary addresses. Rejections are silent:
    the sender learns nothing about whether the room or the member exists.
    """

    def __init__(self, rooms: RoomManager, send: SendEnvelope):
        self.rooms = rooms
        self.send = send

    async def check(self, envelope: RelayEnvelope, source: PeerAddress) -> RelayEnvelope:
        """Return the envelope to forward, or raise RelayRejected."""
        if not envelope.id or envelope.to is None:
            raise RelayRejected("relay envelope needs id and to")

        try:
            members = await self.rooms.query(envelope.id, source)
        except RoomNotFound as e:
            raise RelayRejected(f"room {envelope.id} not found") from e

        if envelope.to not in members:
            raise RelayRejected(f"{envelope.to} is not a member of room {envelope.id}")

        return envelope.model_copy(update={"protocol": PROTOCOL_RELAY, "from_": source})

    async def relay(self, envelope: RelayEnvelope, source: PeerAddress) -> bool:
        try:
            forward = await self.check(envelope, source)
        except RelayRejected as e:
            logger.warning(f"Dropped relay from {source}: {e}")
            return False

        logger.debug(f"Relaying {envelope.type} from {source} to {envelope.to} in room {envelope.id}")
        return await self.send(forward, envelope.to)
