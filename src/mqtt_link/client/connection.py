"""
MQTT Client Connection Lifecycle Management.

This module provides the `ConnectionManager`, which:
- Owns the transport (TCP, optionally upgraded to TLS) for one logical connection.
- Drives the CONNECT/CONNACK handshake with a bounded wait.
- Keeps the NEW / CONNECTED / DISCONNECTED state machine; it is the only
  component allowed to change the status.
- Decides when to probe the broker (PINGREQ) and when silence means the
  link is dead.
- Orchestrates graceful and forced teardown across the sender, the handler
  and the publisher queue.

All state lives on the event loop that drives the manager; the reader path
and the keep-alive check are expected to run in the same task
(see `keepalive.run_connection_loop`).
"""
import asyncio
import contextlib
import logging
import math
import ssl
import time
from fractions import Fraction
from typing import Callable, Optional

from mqtt_link.client.codec import AMQTTPacketCodec
from mqtt_link.client.exceptions import ConfigurationError, HandshakeTimeout, InvalidTransitionError, TLSConfigError, TransportError
from mqtt_link.client.handler import InboundHandler as DefaultInboundHandler
from mqtt_link.client.interfaces import Diagnostics, InboundHandler, OutboundSender, PacketCodec, Publisher
from mqtt_link.client.models import ConnectionStatus, SessionParams
from mqtt_link.client.sender import OutboundSender as DefaultOutboundSender
from mqtt_link.client.transport import Stream, open_stream, wrap_tls

# Probing starts at 70% of the keep-alive interval, the link is declared dead at 110%.
# Fractions keep ceil() exact: 100 * 1.1 is 110.00000000000001 as a float.
PROBE_FACTOR = Fraction(7, 10)
DISCONNECT_FACTOR = Fraction(11, 10)

_TRANSITIONS = {
    ConnectionStatus.DISCONNECTED: {ConnectionStatus.NEW},
    ConnectionStatus.NEW: {ConnectionStatus.CONNECTED, ConnectionStatus.DISCONNECTED},
    ConnectionStatus.CONNECTED: {ConnectionStatus.DISCONNECTED},
}


class ConnectionManager:
    status: ConnectionStatus
    host: str
    port: int
    use_tls: bool
    tls_context: Optional[ssl.SSLContext]
    handshake_timeout: float
    connect_timeout: float
    socket: Optional[Stream]

    """
    Manages the lifecycle of one logical connection to an MQTT broker.
    Built once per client; the socket underneath may be replaced many times across reconnects.
    """
    def __init__(self,
                 host: str,
                 port: int,
                 *,
                 use_tls: bool = False,
                 tls_context: Optional[ssl.SSLContext] = None,
                 handshake_timeout: float = 5.0,
                 connect_timeout: float = 5.0,
                 sender: Optional[OutboundSender] = None,
                 handler: Optional[InboundHandler] = None,
                 codec: Optional[PacketCodec] = None,
                 logger: Optional[Diagnostics] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.host = ""
        self.port = 0
        self.set_endpoint(host, port)

        self.use_tls = use_tls
        self.tls_context = tls_context
        self.handshake_timeout = handshake_timeout
        self.connect_timeout = connect_timeout

        self.codec = codec or AMQTTPacketCodec()
        self.sender = sender or DefaultOutboundSender(codec=self.codec, clock=clock, logger=self.logger)
        self.handler = handler or DefaultInboundHandler(clock=clock, logger=self.logger)

        self.socket = None
        self.status = ConnectionStatus.DISCONNECTED

    # --- State machine ---

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    def _transition(self, target: ConnectionStatus):
        if target is self.status:
            return
        if target not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.status.value, target.value)
        self.logger.debug(f"Connection status {self.status.value} -> {target.value}")
        self.status = target

    # --- Endpoint & transport ---

    def set_endpoint(self, host: str, port: int):
        """
        Validates and stores the broker endpoint. Both values are checked before
        either is assigned, so a rejected call leaves the previous endpoint untouched.
        """
        if not isinstance(host, str) or not host:
            self.logger.error("The host is empty. Could not set up the connection.")
            raise ConfigurationError(f"Invalid host: {host!r}")
        if isinstance(port, bool) or not isinstance(port, int) or port <= 0:
            self.logger.error(f"The port value {port!r} is invalid (must be a positive integer). Could not set up the connection.")
            raise ConfigurationError(f"Invalid port: {port!r}")
        self.host = host
        self.port = port

    async def establish_transport(self) -> Optional[Stream]:
        """
        (Re)opens the socket to the broker.

        A TCP or TLS handshake failure is logged and leaves the socket absent; it
        surfaces later as a handshake timeout. Configuration problems (bad endpoint,
        TLS without a context) raise immediately.
        """
        self.set_endpoint(self.host, self.port)
        await self._close_socket()

        self.logger.info(f"Attempt to connect to host: {self.host}:{self.port}...")
        try:
            stream = await open_stream(self.host, self.port, timeout=self.connect_timeout)
        except (OSError, TimeoutError) as e:
            self.logger.warning(f"Could not open a socket with {self.host} on port {self.port}: {e!r}")
            return None

        if self.use_tls:
            if self.tls_context is None:
                self.logger.error("The SSL context is missing while TLS was requested.")
                await self._close_quietly(stream)
                raise TLSConfigError(self.host)
            try:
                stream = await wrap_tls(stream, self.tls_context, server_hostname=self.host)
            except (OSError, TimeoutError) as e:
                # ssl.SSLError is an OSError
                self.logger.warning(f"TLS handshake with {self.host} failed: {e!r}")
                await self._close_quietly(stream)
                return None

        self.socket = stream
        self.sender.attach_socket(stream)
        return stream

    # --- Handshake ---

    async def connect(self, session: SessionParams, is_reconnect: bool = False) -> ConnectionStatus:
        """
        Opens the transport, sends CONNECT and waits up to `handshake_timeout`
        for the broker to accept it.

        Raises HandshakeTimeout when a fresh attempt times out. A reconnect attempt
        returns DISCONNECTED instead, so the caller can decide to retry.
        """
        if self.is_connected:
            self.logger.warning(f"connect() called while already connected to {self.host}; ignoring.")
            return self.status

        await self.establish_transport()

        self._transition(ConnectionStatus.NEW)
        self.handler.attach_socket(self.socket)

        packet = self.codec.encode_connect(session)
        self.handler.clean_session = session.clean_session
        if self.socket is not None:
            try:
                await self.sender.send(packet)
            except (OSError, TransportError) as e:
                self.logger.warning(f"Could not send CONNECT to {self.host}: {e!r}")

        deadline = self.clock() + self.handshake_timeout
        while not self.is_connected and self.clock() <= deadline:
            await self.process_inbound()

        if not self.is_connected:
            self._transition(ConnectionStatus.DISCONNECTED)
            self.logger.error(f"Connection failed. Couldn't receive a CONNACK packet from: {self.host}.")
            if not is_reconnect:
                raise HandshakeTimeout(self.host, self.port, self.handshake_timeout)
        return self.status

    async def process_inbound(self) -> ConnectionStatus:
        """
        Lets the handler process at most one inbound event and applies what it reports.
        During a handshake only a CONNACK (or the deadline) may end the attempt.
        """
        reported = await self.handler.poll_next()
        if reported is ConnectionStatus.CONNECTED and self.status is ConnectionStatus.NEW:
            self._transition(ConnectionStatus.CONNECTED)
            self.logger.info(f"Connected to {self.host}:{self.port}.")
        elif reported is ConnectionStatus.DISCONNECTED and self.status is ConnectionStatus.CONNECTED:
            self.logger.warning(f"Lost connection to {self.host}.")
            self._transition(ConnectionStatus.DISCONNECTED)
        return self.status

    # --- Keep-alive ---

    def should_send_probe(self, now: float, keep_alive: int, last_received_at: float) -> bool:
        """
        True when no PINGREQ is outstanding and the quieter direction of traffic
        has been idle for ceil(0.7 * keep_alive) seconds.
        """
        last_probe_sent_at = self.sender.last_probe_sent_at
        last_probe_response_at = self.handler.last_probe_response_at
        outstanding = last_probe_sent_at is not None and (
            last_probe_response_at is None or last_probe_response_at < last_probe_sent_at)
        if outstanding:
            return False

        last_sent_at = self.sender.last_sent_at
        last_activity = last_received_at if last_sent_at is None else min(last_sent_at, last_received_at)
        next_probe_at = last_activity + math.ceil(keep_alive * PROBE_FACTOR)
        return next_probe_at <= now

    async def check_keep_alive(self, persistent: bool, keep_alive: int) -> ConnectionStatus:
        """
        Sends a PINGREQ when one is due (persistent sessions only) and drops the
        connection after ceil(1.1 * keep_alive) seconds without any inbound packet.
        """
        now = self.clock()
        last_received_at = self.handler.last_received_at
        if last_received_at is None or self.status is ConnectionStatus.DISCONNECTED:
            return self.status

        if persistent and self.should_send_probe(now, keep_alive, last_received_at):
            self.logger.info("Checking if server is still alive...")
            try:
                await self.sender.send_probe_request()
            except (OSError, TransportError) as e:
                self.logger.warning(f"Could not send PINGREQ to {self.host}: {e!r}")

        disconnect_at = last_received_at + math.ceil(keep_alive * DISCONNECT_FACTOR)
        if now >= disconnect_at and self.status is not ConnectionStatus.DISCONNECTED:
            self.logger.info(f"No activity is over timeout, disconnecting from {self.host}.")
            self._transition(ConnectionStatus.DISCONNECTED)
        return self.status

    # --- Shutdown ---

    async def disconnect(self,
                         publisher: Optional[Publisher] = None,
                         explicit: bool = False,
                         background_task: Optional[asyncio.Task] = None):
        """
        Tears the connection down.

        An explicit disconnect first drops packets awaiting acknowledgment, sends
        DISCONNECT, cancels the background task and flushes the publisher, in that
        order. The socket is closed in every case. Safe to call repeatedly.

        When the background task itself calls this, it is cancelled only once the
        socket is cleared and the status is DISCONNECTED.
        """
        self.logger.info(f"Disconnecting from {self.host}.")
        cancel_caller = False
        if explicit:
            cancel_caller = await self._graceful_shutdown(publisher, background_task)

        await self._close_socket()
        self._transition(ConnectionStatus.DISCONNECTED)
        if cancel_caller:
            background_task.cancel()

    async def _graceful_shutdown(self, publisher: Optional[Publisher], background_task: Optional[asyncio.Task]) -> bool:
        self.sender.discard_pending_acks(retry=False)

        if self.socket is not None and not self.socket.closed:
            try:
                await self.sender.send(self.codec.encode_disconnect())
            except (OSError, TransportError) as e:
                self.logger.warning(f"Could not send DISCONNECT to {self.host}: {e!r}")

        is_caller = background_task is not None and background_task is asyncio.current_task()
        if background_task is not None and not background_task.done() and not is_caller:
            background_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await background_task

        if publisher is not None:
            publisher.flush()
        return is_caller

    async def _close_socket(self):
        try:
            if self.socket is not None:
                await self._close_quietly(self.socket)
        finally:
            self.socket = None
            self.sender.attach_socket(None)
            self.handler.attach_socket(None)

    async def _close_quietly(self, stream: Stream):
        try:
            await stream.close()
        except OSError as e:
            self.logger.debug(f"Error while closing socket: {e!r}")
