import asyncio
from unittest.mock import MagicMock

import orjson
import pytest

from metricservice.authorization import PeerIdentity
from metricservice.exceptions import ConnectionInterrupted, DecodeError
from metricservice.transport import FRAME_HEADER, Connection, encode_frame


def _connection(data: bytes, max_message_size: int = 1024) -> Connection:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    writer = MagicMock(spec=asyncio.StreamWriter)
    writer.get_extra_info.return_value = None
    return Connection(reader, writer, max_message_size)


@pytest.mark.asyncio
async def test_receive_frames_until_eof():
    connection = _connection(
        encode_frame({'json': '{"a": 1}'}) + encode_frame({'json': '{"b": 2}'})
    )

    assert await connection.receive() == {'json': '{"a": 1}'}
    assert await connection.receive() == {'json': '{"b": 2}'}
    assert await connection.receive() is None


@pytest.mark.asyncio
async def test_unknown_peer_without_socket():
    connection = _connection(b'')

    assert connection.peer == PeerIdentity()


@pytest.mark.asyncio
async def test_truncated_frame_interrupts_then_closes():
    frame = encode_frame({'json': '{}'})
    connection = _connection(frame[:-3])

    with pytest.raises(ConnectionInterrupted):
        await connection.receive()
    assert await connection.receive() is None


@pytest.mark.asyncio
async def test_truncated_header_interrupts():
    connection = _connection(b'\x00\x00')

    with pytest.raises(ConnectionInterrupted):
        await connection.receive()


@pytest.mark.asyncio
async def test_oversized_frame_is_rejected():
    connection = _connection(FRAME_HEADER.pack(4096) + b'x' * 16, max_message_size=1024)

    with pytest.raises(DecodeError):
        await connection.receive()


@pytest.mark.asyncio
async def test_invalid_envelope_json():
    body = b'{"json": '
    connection = _connection(FRAME_HEADER.pack(len(body)) + body)

    with pytest.raises(DecodeError):
        await connection.receive()


def test_encode_frame_prefixes_length():
    frame = encode_frame({'json': 'payload'})

    (length,) = FRAME_HEADER.unpack(frame[: FRAME_HEADER.size])
    assert length == len(frame) - FRAME_HEADER.size
    assert orjson.loads(frame[FRAME_HEADER.size :]) == {'json': 'payload'}


@pytest.mark.asyncio
async def test_close_is_idempotent():
    connection = _connection(b'')
    connection._writer.is_closing.side_effect = [False, True]

    await connection.close()
    await connection.close()

    connection._writer.close.assert_called_once()
