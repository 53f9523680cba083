import asyncio
import json
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from pydantic import ValidationError

from constants import MAX_DATAGRAM_SIZE
from errors import DecodeError, EncodeError
from logging_config import get_logger
from routers.relay import RelayForwarder
from routers.rooms import RoomManager
from schemas.envelope import (
    TYPE_CONNECT,
    TYPE_CREATE,
    TYPE_INFO,
    ApiEnvelope,
    Envelope,
    PeerAddress,
    RelayEnvelope,
    parse_envelope,
)

logger = get_logger(__name__)


@dataclass
class ServerStats:
    received: int = 0
    replies: int = 0
    relayed: int = 0
    relay_rejected: int = 0
    ignored: int = 0
    decode_errors: int = 0
    encode_errors: int = 0
    handler_errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class Dispatcher:
    """Decodes datagrams, routes envelopes and sends the results.

    api create/connect go to RoomManager.handle_register, api info to
    RoomManager.handle_info, relay envelopes with id and to go to the
    RelayForwarder. Everything else is dropped without a reply.
    """

    def __init__(self, rooms: RoomManager, sendto: Callable[[bytes, tuple], None],
                 on_error: Optional[Callable[[Exception], None]] = None):
        self.rooms = rooms
        self.sendto = sendto
        self.on_error = on_error
        self.stats = ServerStats()
        self.relay = RelayForwarder(rooms, self.send)

    def decode(self, data: bytes) -> Envelope:
        try:
            message = json.loads(data)
        except ValueError as e:
            raise DecodeError(f"malformed envelope: {e}") from e
        if not isinstance(message, dict):
            raise DecodeError(f"malformed envelope: expected an object, got {type(message).__name__}")

        try:
            return parse_envelope(message)
        except ValidationError as e:
            raise DecodeError(f"malformed envelope: {e.error_count()} error(s), first: {e.errors()[0]['msg']}") from e

    def encode(self, envelope: Envelope) -> bytes:
        try:
            data = envelope.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")
        except (ValueError, TypeError) as e:
            raise EncodeError(f"cannot encode {envelope.type} envelope: {e}") from e
        if len(data) > MAX_DATAGRAM_SIZE:
            raise EncodeError(f"{envelope.type} envelope is {len(data)} bytes, limit is {MAX_DATAGRAM_SIZE}")
        return data

    def _report(self, error: Exception):
        if self.on_error is not None:
            self.on_error(error)

    async def send(self, envelope: Envelope, address: PeerAddress) -> bool:
        try:
            data = self.encode(envelope)
        except EncodeError as e:
            self.stats.encode_errors += 1
            logger.warning(f"Not sending to {address}: {e}")
            self._report(e)
            return False

        try:
            self.sendto(data, address.as_tuple())
        except OSError as e:
            logger.warning(f"Send to {address} failed: {e}")
            return False
        return True

    async def reply(self, request: Envelope, response: Envelope, address: PeerAddress) -> bool:
        # replies always echo the request's correlation token
        response.seq = request.seq
        sent = await self.send(response, address)
        if sent:
            self.stats.replies += 1
        return sent

    async def dispatch(self, envelope: Envelope, source: PeerAddress):
        if isinstance(envelope, ApiEnvelope):
            if envelope.type in (TYPE_CREATE, TYPE_CONNECT):
                response = await self.rooms.handle_register(envelope, source)
            elif envelope.type == TYPE_INFO:
                response = await self.rooms.handle_info(envelope, source)
            else:
                self.stats.ignored += 1
                logger.debug(f"Ignoring api envelope of type {envelope.type!r} from {source}")
                return
            if response is not None:
                await self.reply(envelope, response, source)
        elif isinstance(envelope, RelayEnvelope) and envelope.id and envelope.to is not None:
            if await self.relay.relay(envelope, source):
                self.stats.relayed += 1
            else:
                self.stats.relay_rejected += 1
        else:
            self.stats.ignored += 1
            logger.debug(f"Ignoring {envelope.protocol!r} envelope of type {envelope.type!r} from {source}")

    async def handle_datagram(self, data: bytes, addr: tuple):
        """Entry point for one inbound datagram. Never raises."""
        self.stats.received += 1
        source = PeerAddress.from_transport(addr)
        try:
            envelope = self.decode(data)
        except DecodeError as e:
            self.stats.decode_errors += 1
            logger.warning(f"Dropping datagram from {source}: {e}")
            self._report(e)
            return

        try:
            await self.dispatch(envelope, source)
        except Exception as e:
            self.stats.handler_errors += 1
            logger.error(f"Error handling {envelope.protocol}/{envelope.type} from {source}: {e}", exc_info=True)
            self._report(e)


class RendezvousProtocol(asyncio.DatagramProtocol):
    """Runs every inbound datagram as its own task on the event loop."""

    def __init__(self, server: "UdpServer"):
        self.server = server

    def connection_made(self, transport):
        self.server.transport = transport

    def datagram_received(self, data, addr):
        self.server.spawn(data, addr)

    def error_received(self, exc):
        logger.warning(f"UDP socket error: {exc}")

    def connection_lost(self, exc):
        if exc is not None:
            logger.error(f"UDP endpoint closed with error: {exc}")


class UdpServer:
    def __init__(self, rooms: RoomManager, on_error: Optional[Callable[[Exception], None]] = None):
        self.transport: Optional[asyncio.DatagramTransport] = None
        self.dispatcher = Dispatcher(rooms, self._sendto, on_error=on_error)
        self._tasks: set = set()

    def _sendto(self, data: bytes, addr: tuple):
        if self.transport is None or self.transport.is_closing():
            raise OSError("UDP endpoint is not open")
        self.transport.sendto(data, addr)

    @property
    def local_address(self) -> Optional[tuple]:
        if self.transport is None:
            return None
        return self.transport.get_extra_info("sockname")

    def spawn(self, data: bytes, addr: tuple):
        task = asyncio.get_running_loop().create_task(self.dispatcher.handle_datagram(data, addr))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def start(self, host: str, port: int):
        loop = asyncio.get_running_loop()
        await loop.create_datagram_endpoint(lambda: RendezvousProtocol(self), local_addr=(host, port))
        logger.info(f"Rendezvous UDP server listening on {self.local_address}")

    async def stop(self):
        if self.transport is not None:
            self.transport.close()
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} in-flight datagram(s)")
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Rendezvous UDP server stopped")
