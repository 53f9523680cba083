import ipaddress
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

PROTOCOL_API = "api"
PROTOCOL_RELAY = "relay"

# api request types
TYPE_CREATE = "create"
TYPE_CONNECT = "connect"
TYPE_INFO = "info"

# api reply types (info replies reuse TYPE_INFO)
TYPE_CREATE_RESPONSE = "create-response"
TYPE_ERROR = "error"


def address_family(ip: str) -> str:
    try:
        return f"IPv{ipaddress.ip_address(ip).version}"
    except ValueError:
        return "IPv4"


class PeerAddress(BaseModel):
    """A peer's externally observed address.

    Two addresses are equal when ip and port match; family is informational
    and ignored by comparisons and hashing.
    """

    ip: str
    family: Optional[str] = None
    port: int = Field(ge=0, le=65535)

    @classmethod
    def from_transport(cls, addr) -> "PeerAddress":
        # asyncio hands over (host, port) for IPv4 and (host, port, flow, scope) for IPv6
        ip, port = addr[0], addr[1]
        return cls(ip=ip, family=address_family(ip), port=port)

    def with_port(self, port: int) -> "PeerAddress":
        return PeerAddress(ip=self.ip, family=self.family, port=port)

    def as_tuple(self):
        return (self.ip, self.port)

    def __eq__(self, other):
        if not isinstance(other, PeerAddress):
            return NotImplemented
        return self.ip == other.ip and self.port == other.port

    def __hash__(self):
        return hash((self.ip, self.port))

    def __str__(self):
        return f"{self.ip}:{self.port}"


class Envelope(BaseModel):
    """Fields shared by every protocol. Anything else is kept as an extra."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    protocol: str = PROTOCOL_API
    type: Optional[str] = None
    seq: Any = None
    id: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def empty_id_is_absent(cls, value):
        if value == "":
            return None
        return value


class ApiEnvelope(Envelope):
    """Room requests and the server's replies to them."""

    port: Optional[int] = Field(default=None, ge=0, le=65535)
    reason: Optional[str] = None
    members: Optional[list[PeerAddress]] = None


class RelayEnvelope(Envelope):
    """Peer to peer message. Only the routing fields are typed, the rest is forwarded as sent."""

    to: Optional[PeerAddress] = None
    from_: Optional[PeerAddress] = Field(default=None, alias="from")

    @field_validator("from_", mode="before")
    @classmethod
    def drop_claimed_sender(cls, value, info: ValidationInfo):
        # Sender identity on the wire always comes from the transport, never from the payload.
        if info.context and info.context.get("wire"):
            return None
        return value


def parse_envelope(message: dict) -> Envelope:
    """Validate a decoded datagram with the model for its protocol.

    Raises pydantic.ValidationError.
    """
    protocol = message.get("protocol", PROTOCOL_API)
    if protocol == PROTOCOL_API:
        model = ApiEnvelope
    elif protocol == PROTOCOL_RELAY:
        model = RelayEnvelope
    else:
        model = Envelope
    return model.model_validate(message, context={"wire": True})
