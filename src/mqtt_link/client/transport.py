"""
Transport Layer.

Opens the TCP stream to the broker and upgrades it to TLS on request.
The resulting `Stream` is owned by the ConnectionManager and shared by
reference with the sender and the handler.
"""
import asyncio
import logging
import ssl
from dataclasses import dataclass
from typing import Optional

from mqtt_link.client.exceptions import TLSConfigError

logger = logging.getLogger(__name__)


@dataclass
class Stream:
    """An open (possibly encrypted) connection to the broker."""
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter

    @property
    def closed(self) -> bool:
        return self.writer.is_closing()

    @property
    def encrypted(self) -> bool:
        return self.writer.get_extra_info("sslcontext") is not None

    @property
    def peername(self):
        return self.writer.get_extra_info("peername")

    def write(self, data: bytes) -> None:
        self.writer.write(data)

    async def drain(self) -> None:
        await self.writer.drain()

    async def close(self) -> None:
        if not self.writer.is_closing():
            self.writer.close()
        await self.writer.wait_closed()


async def open_stream(host: str, port: int, timeout: float = 5.0) -> Stream:
    """
    Opens a plain TCP stream to host:port.
    Raises OSError (refused, unreachable, DNS) or TimeoutError.
    """
    reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    logger.debug(f"TCP stream open to {host}:{port}")
    return Stream(reader=reader, writer=writer)


async def wrap_tls(stream: Stream, context: Optional[ssl.SSLContext], server_hostname: Optional[str] = None) -> Stream:
    """
    Upgrades an open stream to TLS in place.
    A missing context is a configuration error, since TLS was asked for without credentials.
    """
    if context is None:
        raise TLSConfigError(server_hostname or "<unknown>")
    await stream.writer.start_tls(context, server_hostname=server_hostname)
    logger.debug(f"TLS session established with {server_hostname}")
    return stream
