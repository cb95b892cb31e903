"""
mqtt_link

This package provides the connection-lifecycle core of an asynchronous
MQTT 3.1.1 client: transport setup (TCP, optionally TLS), the
CONNECT/CONNACK handshake, a small connection state machine and the
keep-alive protocol.
"""
__version__ = "0.1.0"
