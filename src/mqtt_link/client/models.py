"""
Data Models for the Connection Core.

Defines the connection status enum, the session parameters that go into
a CONNECT packet and the settings a ConnectionManager is built from.
"""
from dataclasses import dataclass, field
import ssl
from typing import Optional

from enum import Enum
class ConnectionStatus(str, Enum):
    NEW = "new"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"

# --- Session (what we tell the broker) ---

@dataclass(frozen=True, kw_only=True)
class SessionParams:
    """Everything the CONNECT packet carries."""
    client_id: str
    clean_session: bool = True
    keep_alive: int = 60 # seconds
    username: Optional[str] = None
    password: Optional[str] = None

    # Last Will
    will_topic: Optional[str] = None
    will_message: Optional[bytes] = None
    will_qos: int = 0
    will_retain: bool = False

    @property
    def has_will(self) -> bool:
        return self.will_topic is not None

# --- Settings (how we reach the broker) ---

@dataclass(frozen=True, kw_only=True)
class ConnectionSettings:
    """Connection parameters, usually produced by the config loader."""
    host: str
    port: int = 1883
    use_tls: bool = False
    ca_file: Optional[str] = None
    cert_file: Optional[str] = None
    key_file: Optional[str] = None

    handshake_timeout: float = 5.0  # CONNECT -> CONNACK bound
    connect_timeout: float = 5.0    # TCP open bound
    poll_timeout: float = 0.1       # a single inbound poll slice
    keep_alive_interval: float = 1.0
    persistent: bool = True         # keep-alive probing enabled
    reconnect_delay: float = 5.0

    session: SessionParams = field(default_factory=lambda: SessionParams(client_id="mqtt-link"))

    def tls_context(self) -> Optional[ssl.SSLContext]:
        """
        Builds a client-side SSL context from the configured files.
        Returns None when TLS is disabled.
        """
        if not self.use_tls:
            return None
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=self.ca_file)
        if self.cert_file:
            context.load_cert_chain(certfile=self.cert_file, keyfile=self.key_file)
        return context
