class RendezvousError(Exception):
    """Base class for every error raised by the rendezvous server."""


class DecodeError(RendezvousError):
    """Inbound datagram is not a valid envelope."""


class EncodeError(RendezvousError):
    """Outbound envelope could not be turned into a datagram."""


class StoreError(RendezvousError):
    """The room store failed to complete a command."""


class RoomNotFound(RendezvousError):
    """The room has no live members, expired, or could not be read."""

    reason = "no such room"

    def __init__(self, room_id):
        super().__init__(f"{self.reason}: {room_id}")
        self.room_id = room_id


class RelayRejected(RendezvousError):
    """A relay envelope may not be forwarded. Never reported to the sender."""
