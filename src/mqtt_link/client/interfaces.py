"""
Collaborator Interfaces.

The ConnectionManager never encodes, reads or queues packets itself. It talks
to the pieces below, which can be swapped out (the defaults live in codec.py,
sender.py, handler.py and publisher.py).
"""
from typing import Any, Optional, Protocol

from mqtt_link.client.models import ConnectionStatus, SessionParams
from mqtt_link.client.transport import Stream


class Packet(Protocol):
    def to_bytes(self) -> bytes: ...


class PacketCodec(Protocol):
    def encode_connect(self, session: SessionParams) -> Packet: ...
    def encode_disconnect(self) -> Packet: ...
    def encode_ping_request(self) -> Packet: ...


class OutboundSender(Protocol):
    """Transmits packets and remembers when it last did so."""
    last_sent_at: Optional[float]
    last_probe_sent_at: Optional[float]

    def attach_socket(self, stream: Optional[Stream]) -> None: ...
    async def send(self, packet: Packet) -> None: ...
    async def send_probe_request(self) -> None: ...
    def discard_pending_acks(self, retry: bool = False) -> list: ...


class InboundHandler(Protocol):
    """Receives packets and reports the status they imply."""
    last_received_at: Optional[float]
    last_probe_response_at: Optional[float]
    clean_session: bool

    def attach_socket(self, stream: Optional[Stream]) -> None: ...
    async def poll_next(self) -> ConnectionStatus:
        """Processes at most one inbound event. Must not block past its own poll slice."""
        ...


class Publisher(Protocol):
    def flush(self) -> int: ...


class Diagnostics(Protocol):
    """Where log lines go. A `logging.Logger` fits."""
    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def info(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def error(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
