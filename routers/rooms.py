import hashlib
import os
from typing import Optional

from pydantic import ValidationError

from backend import RoomStore
from constants import ROOM_ID_ATTEMPTS, ROOM_TTL_SECONDS
from errors import RoomNotFound, StoreError
from logging_config import get_logger
from schemas.envelope import (
    PROTOCOL_API,
    TYPE_CREATE_RESPONSE,
    TYPE_ERROR,
    TYPE_INFO,
    ApiEnvelope,
    PeerAddress,
)

logger = get_logger(__name__)


def generate_room_id() -> str:
    # 160 bit hex digest
    return hashlib.sha1(os.urandom(256)).hexdigest()


class RoomManager:
    """Room registration and member lookup for the api protocol.

    Identity rule used everywhere in this module: the transport-observed
    address is authoritative. A client-declared port only adds a second
    registration entry or an extra exclusion in queries, it is never
    trusted as the peer's identity.

    Nothing here serializes concurrent operations on the same room. A query
    racing a registration can see the list before or after the append.
    """

    def __init__(self, store: RoomStore, ttl: int = ROOM_TTL_SECONDS):
        self.store = store
        self.ttl = ttl

    async def _new_room_id(self) -> str:
        for _ in range(ROOM_ID_ATTEMPTS):
            room_id = generate_room_id()
            if not await self.store.length(room_id):
                return room_id
            logger.warning(f"Generated room id {room_id} is already live, retrying")
        raise StoreError(f"could not allocate a free room id in {ROOM_ID_ATTEMPTS} attempts")

    async def register(self, room_id: Optional[str], source: PeerAddress, declared_port: Optional[int] = None) -> str:
        """Add the peer to a room, creating the room when room_id is None.

        Raises StoreError if the store cannot take the entries.
        """
        if not room_id:
            room_id = await self._new_room_id()

        entries = [source]
        if declared_port is not None and declared_port != source.port:
            entries.append(source.with_port(declared_port))

        for entry in entries:
            await self.store.append(room_id, entry.model_dump_json())
        await self.store.set_expiry(room_id, self.ttl)
        logger.debug(f"Registered {', '.join(str(e) for e in entries)} in room {room_id}")
        return room_id

    async def query(self, room_id: str, requester: PeerAddress, declared_port: Optional[int] = None) -> list:
        """Return the room's members other than the requester.

        Raises RoomNotFound when the room is empty, expired, or unreadable.
        """
        try:
            raw_entries = await self.store.read_all(room_id)
            if not raw_entries:
                raise RoomNotFound(room_id)
            await self.store.set_expiry(room_id, self.ttl)
        except StoreError as e:
            logger.warning(f"Store error while reading room {room_id}: {e}")
            raise RoomNotFound(room_id) from e

        excluded = {requester}
        if declared_port is not None:
            excluded.add(requester.with_port(declared_port))

        members = []
        for raw in raw_entries:
            try:
                member = PeerAddress.model_validate_json(raw)
            except ValidationError:
                logger.debug(f"Skipping unreadable entry in room {room_id}: {raw!r}")
                continue
            if member not in excluded:
                members.append(member)
        return members

    async def handle_register(self, envelope: ApiEnvelope, source: PeerAddress) -> Optional[ApiEnvelope]:
        """Handle create and connect. A connect is answered like an info request."""
        try:
            room_id = await self.register(envelope.id, source, envelope.port)
        except StoreError as e:
            logger.error(f"Registration from {source} failed: {e}")
            return None

        if not envelope.id:
            logger.info(f"Room {room_id} created by {source}")
            return ApiEnvelope(protocol=PROTOCOL_API, type=TYPE_CREATE_RESPONSE, id=room_id)
        return await self.handle_info(envelope, source)

    async def handle_info(self, envelope: ApiEnvelope, source: PeerAddress) -> Optional[ApiEnvelope]:
        if not envelope.id:
            logger.debug(f"Ignoring info request without room id from {source}")
            return None

        try:
            members = await self.query(envelope.id, source, envelope.port)
        except RoomNotFound as e:
            logger.debug(f"Info for unknown room {envelope.id} from {source}")
            return ApiEnvelope(protocol=PROTOCOL_API, type=TYPE_ERROR, reason=e.reason, id=envelope.id)

        return ApiEnvelope(protocol=PROTOCOL_API, type=TYPE_INFO, id=envelope.id, members=members)
