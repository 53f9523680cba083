from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    version: str
    store: str
    udp: str


class StatsResponse(BaseModel):
    received: int
    replies: int
    relayed: int
    relay_rejected: int
    ignored: int
    decode_errors: int
    encode_errors: int
    handler_errors: int
