"""
Inbound Packet Handler.

Reads one packet at a time from the shared stream, keeps the two inbound
clocks (last packet received, last PINGRESP received) and reports the
connection status each packet implies. It never changes the manager's
status itself; the ConnectionManager decides what to do with a report.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

from amqtt.mqtt.connack import CONNECTION_ACCEPTED
from amqtt.mqtt.packet import CONNACK, PINGRESP, MQTTFixedHeader
from paho.mqtt.client import connack_string

from mqtt_link.client.codec import ReplayReaderAdapter, decode_connack, read_packet
from mqtt_link.client.exceptions import MalformedPacketError, TransportError
from mqtt_link.client.interfaces import Diagnostics
from mqtt_link.client.models import ConnectionStatus
from mqtt_link.client.transport import Stream

PacketCallback = Callable[[int, int, bytes], None]


class InboundHandler:
    stream: Optional[Stream]
    status: ConnectionStatus
    clean_session: bool
    last_received_at: Optional[float]
    last_probe_response_at: Optional[float]

    def __init__(self,
                 poll_timeout: float = 0.1,
                 packet_timeout: float = 5.0,
                 on_packet: Optional[PacketCallback] = None,
                 clock: Callable[[], float] = time.monotonic,
                 logger: Optional[Diagnostics] = None):
        self.poll_timeout = poll_timeout     # wait for the first byte of a packet
        self.packet_timeout = packet_timeout # wait for the rest once it started
        self.on_packet = on_packet
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

        self.stream = None
        self.status = ConnectionStatus.DISCONNECTED
        self.clean_session = True
        self.last_received_at = None
        self.last_probe_response_at = None
        self._broken = False

    def attach_socket(self, stream: Optional[Stream]):
        self.stream = stream
        self._broken = False
        if stream is None:
            self.status = ConnectionStatus.DISCONNECTED
            return
        self.status = ConnectionStatus.NEW
        self.last_received_at = self.clock()
        self.last_probe_response_at = None

    @property
    def readable(self) -> bool:
        return self.stream is not None and not self.stream.closed and not self._broken

    async def poll_next(self) -> ConnectionStatus:
        """
        Processes at most one inbound packet and returns the status it implies.
        Waits no longer than `poll_timeout` for a packet to start. Without a
        usable socket it sleeps one poll slice so callers polling in a loop do not spin.
        """
        if not self.readable:
            await asyncio.sleep(self.poll_timeout)
            self.status = ConnectionStatus.DISCONNECTED
            return self.status

        reader = self.stream.reader
        try:
            first = await asyncio.wait_for(reader.readexactly(1), timeout=self.poll_timeout)
        except TimeoutError:
            return self.status
        except (asyncio.IncompleteReadError, OSError) as e:
            return self._link_lost(f"Connection closed by peer: {e!r}")

        try:
            header, body = await asyncio.wait_for(
                read_packet(ReplayReaderAdapter(first, reader)), timeout=self.packet_timeout)
        except MalformedPacketError as e:
            return self._link_lost(f"Malformed packet header: {e}")
        except (TransportError, TimeoutError, OSError) as e:
            return self._link_lost(f"Truncated packet: {e!r}")

        self.last_received_at = self.clock()
        await self._dispatch(header, body)
        return self.status

    async def _dispatch(self, header: MQTTFixedHeader, body: bytes):
        if header.packet_type == CONNACK:
            await self._handle_connack(header, body)
        elif header.packet_type == PINGRESP:
            self.last_probe_response_at = self.last_received_at
            self.logger.debug("PINGRESP received.")
        elif self.on_packet is not None:
            self.on_packet(header.packet_type, header.flags, body)
        else:
            self.logger.debug(f"Ignoring packet of type {header.packet_type} ({len(body)} bytes)")

    async def _handle_connack(self, header: MQTTFixedHeader, body: bytes):
        try:
            connack = await decode_connack(header, body)
        except MalformedPacketError as e:
            self._link_lost(str(e))
            return
        session_present = bool(connack.session_parent)
        return_code = connack.return_code
        if return_code != CONNECTION_ACCEPTED:
            self.logger.error(f"Connection refused by broker: {connack_string(return_code)} (code {return_code})")
            self.status = ConnectionStatus.DISCONNECTED
            return
        if self.clean_session and session_present:
            # A broker must not resume a session we asked to clean (MQTT 3.1.1, 3.2.2.2)
            self.logger.warning("Broker reported a present session although a clean session was requested.")
        self.status = ConnectionStatus.CONNECTED
        self.logger.info(f"CONNACK accepted (session present: {session_present}).")

    def _link_lost(self, reason: str) -> ConnectionStatus:
        self.logger.warning(reason)
        self._broken = True
        self.status = ConnectionStatus.DISCONNECTED
        return self.status
