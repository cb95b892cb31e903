"""
Packet Codec.

Both directions go through `amqtt`'s MQTT 3.1.1 packet classes, so this
module only maps our SessionParams onto them and reads packets off the
stream. Inbound, only CONNACK is decoded further; any other body is handed
over as raw bytes.
"""
import asyncio

from amqtt.adapters import BufferReader, ReaderAdapter, StreamReaderAdapter
from amqtt.codecs_amqtt import read_or_raise
from amqtt.errors import MQTTError, NoDataError
from amqtt.mqtt.connack import ConnackVariableHeader
from amqtt.mqtt.connect import ConnectPacket, ConnectPayload, ConnectVariableHeader
from amqtt.mqtt.disconnect import DisconnectPacket
from amqtt.mqtt.packet import MQTTFixedHeader
from amqtt.mqtt.pingreq import PingReqPacket

from mqtt_link.client.exceptions import MalformedPacketError, TransportError
from mqtt_link.client.models import SessionParams


class AMQTTPacketCodec:
    """Builds outbound packets with amqtt."""

    def encode_connect(self, session: SessionParams) -> ConnectPacket:
        vh = ConnectVariableHeader()
        payload = ConnectPayload(client_id=session.client_id)

        # will_qos first: setting it rewrites the flag bits around it
        if session.has_will:
            vh.will_qos = session.will_qos
            vh.will_flag = True
            vh.will_retain_flag = session.will_retain
            payload.will_topic = session.will_topic
            payload.will_message = session.will_message or b""

        vh.keep_alive = session.keep_alive
        vh.clean_session_flag = session.clean_session

        if session.username is not None:
            vh.username_flag = True
            payload.username = session.username
        if session.password is not None:
            vh.password_flag = True
            payload.password = session.password

        return ConnectPacket(None, vh, payload)

    def encode_disconnect(self) -> DisconnectPacket:
        return DisconnectPacket()

    def encode_ping_request(self) -> PingReqPacket:
        return PingReqPacket()




class ReplayReaderAdapter(ReaderAdapter):
    """
    Stream adapter that first hands back bytes already taken off the stream.
    The handler reads the first header byte itself to bound its poll; amqtt
    then decodes the whole fixed header from here.
    """

    def __init__(self, consumed: bytes, reader: asyncio.StreamReader):
        self._consumed = consumed
        self._inner = StreamReaderAdapter(reader)

    async def read(self, n: int = -1) -> bytes:
        if not self._consumed:
            return await self._inner.read(n)
        if n == -1:
            head, self._consumed = self._consumed, b""
            return head + await self._inner.read(n)
        head, self._consumed = self._consumed[:n], self._consumed[n:]
        if len(head) < n:
            head += await self._inner.read(n - len(head))
        return head

    def feed_eof(self):
        self._inner.feed_eof()


async def read_packet(reader: ReaderAdapter) -> tuple[MQTTFixedHeader, bytes]:
    """
    Reads one packet: the fixed header through amqtt, then `remaining_length` body bytes.
    Raises MalformedPacketError for an over-long length field and TransportError
    when the stream ends mid-packet.
    """
    try:
        header = await MQTTFixedHeader.from_stream(reader)
    except MQTTError as e:
        raise MalformedPacketError(str(e)) from e
    if header is None:
        raise TransportError("Stream ended inside a fixed header")
    if not header.remaining_length:
        return header, b""
    try:
        body = await read_or_raise(reader, header.remaining_length)
    except NoDataError as e:
        raise TransportError(f"Stream ended inside a packet of type {header.packet_type}") from e
    return header, body


async def decode_connack(header: MQTTFixedHeader, body: bytes) -> ConnackVariableHeader:
    """Decodes the CONNACK variable header (session present flag, return code)."""
    if header.remaining_length != 2:
        raise MalformedPacketError(f"CONNACK with invalid length {header.remaining_length}")
    return await ConnackVariableHeader.from_stream(BufferReader(body), header)
