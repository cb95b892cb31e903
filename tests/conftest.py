"""
Pytest Configuration and Fixtures for the mqtt_link project.

Provides logging setup for test runs and a tiny fake MQTT broker
(plain asyncio server) that answers CONNECT and PINGREQ, so connection
tests run against a real socket without an external broker.
"""

import asyncio
import sys
import logging

import pytest
import pytest_asyncio

from amqtt.adapters import StreamReaderAdapter
from amqtt.mqtt.packet import CONNECT, DISCONNECT, PINGREQ

from mqtt_link.client.codec import read_packet
from mqtt_link.client.exceptions import TransportError
from mqtt_link.client.models import SessionParams

CONNACK_ACCEPTED = b"\x20\x02\x00\x00"
PINGRESP = b"\xd0\x00"

@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """
    Configures the Python logging framework globally for all tests.
    """
    formatter = logging.Formatter(fmt="%(levelname)-8s %(message)s - %(funcName)s:%(lineno)d ")
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)


class FakeBroker:
    """
    Accepts connections on 127.0.0.1 and records the type of every packet it receives.
    `connack=None` makes it swallow CONNECT without answering.
    """
    def __init__(self, connack: bytes | None = CONNACK_ACCEPTED, answer_pings: bool = True):
        self.connack = connack
        self.answer_pings = answer_pings
        self.received: list[int] = []
        self.connections = 0
        self._writers: list[asyncio.StreamWriter] = []
        self.server: asyncio.Server | None = None
        self.port = 0

    async def start(self):
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def stop(self):
        for writer in self._writers:
            writer.close()
        self.server.close()
        await self.server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.connections += 1
        self._writers.append(writer)
        try:
            adapter = StreamReaderAdapter(reader)
            while True:
                header, _ = await read_packet(adapter)
                packet_type = header.packet_type
                self.received.append(packet_type)
                if packet_type == CONNECT and self.connack is not None:
                    writer.write(self.connack)
                elif packet_type == PINGREQ and self.answer_pings:
                    writer.write(PINGRESP)
                elif packet_type == DISCONNECT:
                    break
                await writer.drain()
        except (TransportError, ConnectionError):
            pass
        finally:
            writer.close()


@pytest_asyncio.fixture
async def broker():
    fake = FakeBroker()
    await fake.start()
    yield fake
    await fake.stop()


@pytest_asyncio.fixture
async def silent_broker():
    """A broker that never answers CONNECT."""
    fake = FakeBroker(connack=None)
    await fake.start()
    yield fake
    await fake.stop()


@pytest_asyncio.fixture
async def unused_port():
    """A port nobody listens on (bound once, then released)."""
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port


@pytest.fixture
def session():
    return SessionParams(client_id="test-client", keep_alive=10)


class FakeClock:
    """A monotonic clock the test moves by hand."""
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
