"""Exception types for the connection core.

Configuration problems and handshake failures on a fresh connect reach the
caller. Transient socket errors during setup are absorbed and show up later
as a handshake timeout; keep-alive inactivity is a state change, not an
exception.
"""

from __future__ import annotations


class MQTTLinkError(Exception):
    """Base class for every error raised by mqtt_link."""


class ConfigurationError(MQTTLinkError, ValueError):
    """Invalid configuration (empty host, non-positive port, bad config file values).

    Raised before any connection attempt is made.
    """


class TLSConfigError(ConfigurationError):
    """TLS was requested but no SSL context was supplied.

    Attributes:
        host: Host the connection was being opened to

    """

    def __init__(self, host: str) -> None:
        self.host: str = host
        super().__init__(f"TLS requested for {host} but no SSL context was configured")


class TransportError(MQTTLinkError):
    """The socket is missing or unusable for the requested operation."""


class MalformedPacketError(TransportError):
    """Inbound bytes do not form a valid MQTT fixed header."""


class HandshakeTimeout(MQTTLinkError):
    """No CONNACK accepted within the handshake timeout.

    Attributes:
        host: Broker host
        port: Broker port
        timeout: Handshake timeout that elapsed (seconds)

    """

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host: str = host
        self.port: int = port
        self.timeout: float = timeout
        super().__init__(f"Connection failed: no CONNACK from {host}:{port} within {timeout}s")


# Callers coming from other clients know it under this name.
ConnectionFailed = HandshakeTimeout


class InvalidTransitionError(MQTTLinkError):
    """A status transition outside the connection state machine was requested.

    Attributes:
        current: Status before the transition
        target: Requested status

    """

    def __init__(self, current: str, target: str) -> None:
        self.current: str = current
        self.target: str = target
        super().__init__(f"Invalid connection status transition: {current} -> {target}")
