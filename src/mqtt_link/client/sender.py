"""
Outbound Packet Sender.

Writes packets to the shared stream and keeps the two outbound clocks the
keep-alive scheduler reads: when anything was last sent and when the last
PINGREQ went out. Packets awaiting acknowledgment are parked here until
acknowledged or discarded.
"""
import logging
import time
from typing import Callable, Optional

from mqtt_link.client.codec import AMQTTPacketCodec
from mqtt_link.client.exceptions import TransportError
from mqtt_link.client.interfaces import Diagnostics, Packet, PacketCodec
from mqtt_link.client.transport import Stream


class OutboundSender:
    stream: Optional[Stream]
    last_sent_at: Optional[float]
    last_probe_sent_at: Optional[float]

    def __init__(self, codec: Optional[PacketCodec] = None, clock: Callable[[], float] = time.monotonic, logger: Optional[Diagnostics] = None):
        self.codec = codec or AMQTTPacketCodec()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.stream = None
        self.last_sent_at = None
        self.last_probe_sent_at = None
        self._awaiting_ack: dict[int, Packet] = {}

    def attach_socket(self, stream: Optional[Stream]):
        """
        Shares the manager's stream with the sender. A new stream restarts the clocks;
        a probe outstanding on the previous stream no longer counts.
        """
        self.stream = stream
        if stream is not None:
            self.last_sent_at = self.clock()
            self.last_probe_sent_at = None

    async def send(self, packet: Packet):
        if self.stream is None or self.stream.closed:
            raise TransportError("Cannot send: no open socket")
        data = packet.to_bytes()
        self.stream.write(data)
        await self.stream.drain()
        self.last_sent_at = self.clock()
        self.logger.debug(f"Sent {type(packet).__name__} ({len(data)} bytes)")

    async def send_probe_request(self):
        """Sends a PINGREQ (no payload)."""
        await self.send(self.codec.encode_ping_request())
        self.last_probe_sent_at = self.last_sent_at

    # --- Packets awaiting acknowledgment ---

    def track(self, packet_id: int, packet: Packet):
        self._awaiting_ack[packet_id] = packet

    def acknowledge(self, packet_id: int) -> Optional[Packet]:
        return self._awaiting_ack.pop(packet_id, None)

    @property
    def pending_count(self) -> int:
        return len(self._awaiting_ack)

    def discard_pending_acks(self, retry: bool = False) -> list:
        """
        Drops every packet still waiting for an acknowledgment.
        With retry=True the packets are handed back so the caller can resend them.
        """
        pending = list(self._awaiting_ack.values())
        self._awaiting_ack.clear()
        if retry:
            return pending
        if pending:
            self.logger.warning(f"Discarded {len(pending)} packet(s) still awaiting acknowledgment.")
        return []
