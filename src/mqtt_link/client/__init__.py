"""
Client-side connection core.
This package owns the transport to the broker, the CONNECT/CONNACK
handshake, the connection status and the keep-alive protocol.
"""
from mqtt_link.client.connection import ConnectionManager
from mqtt_link.client.exceptions import (
    ConfigurationError,
    ConnectionFailed,
    HandshakeTimeout,
    InvalidTransitionError,
    MQTTLinkError,
    TLSConfigError,
    TransportError,
)
from mqtt_link.client.models import ConnectionSettings, ConnectionStatus, SessionParams

__all__ = [
    "ConfigurationError",
    "ConnectionFailed",
    "ConnectionManager",
    "ConnectionSettings",
    "ConnectionStatus",
    "HandshakeTimeout",
    "InvalidTransitionError",
    "MQTTLinkError",
    "SessionParams",
    "TLSConfigError",
    "TransportError",
]
