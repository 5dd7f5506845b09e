import asyncio
from collections.abc import Mapping
import logging
import socket
import struct
from typing import Any

import orjson

from metricservice.authorization import PeerIdentity
from metricservice.decoder import PAYLOAD_KEY
from metricservice.exceptions import ConnectionInterrupted, DecodeError
from metricservice.internal.schemas import MetricSet

logger = logging.getLogger(__name__)

FRAME_HEADER = struct.Struct('>I')
_PEERCRED = struct.Struct('3i')


def encode_frame(envelope: Mapping[str, Any]) -> bytes:
    body = orjson.dumps(envelope)
    return FRAME_HEADER.pack(len(body)) + body


def _peer_identity(writer: asyncio.StreamWriter) -> PeerIdentity:
    sock = writer.get_extra_info('socket')
    if sock is None or not hasattr(socket, 'SO_PEERCRED'):
        return PeerIdentity()
    try:
        creds = sock.getsockopt(socket.SOL_SOCKET, socket.SO_PEERCRED, _PEERCRED.size)
    except OSError as e:
        logger.warning('Failed to read peer credentials', extra={'error': str(e)})
        return PeerIdentity()
    pid, uid, gid = _PEERCRED.unpack(creds)
    return PeerIdentity(pid=pid, uid=uid, gid=gid)


class Connection:
    """One accepted producer connection carrying length-prefixed envelopes."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        max_message_size: int,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.max_message_size = max_message_size
        self.peer = _peer_identity(writer)

    async def _read_exactly(self, size: int, at_boundary: bool) -> bytes | None:
        try:
            return await self._reader.readexactly(size)
        except asyncio.IncompleteReadError as e:
            if at_boundary and not e.partial:
                return None
            raise ConnectionInterrupted(
                f'Connection interrupted mid-frame ({len(e.partial)}/{size} bytes)'
            ) from e
        except (ConnectionResetError, BrokenPipeError):
            logger.debug('Connection reset by peer', extra={'pid': self.peer.pid})
            return None

    async def receive(self) -> Any | None:
        """Returns the next envelope, or None once the peer has closed."""
        header = await self._read_exactly(FRAME_HEADER.size, at_boundary=True)
        if header is None:
            return None
        (length,) = FRAME_HEADER.unpack(header)
        if length > self.max_message_size:
            raise DecodeError(
                f'Message of {length} bytes exceeds limit of {self.max_message_size}'
            )
        body = await self._read_exactly(length, at_boundary=False)
        if body is None:
            return None
        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise DecodeError(f'Invalid message envelope: {e}') from e

    async def close(self) -> None:
        if self._writer.is_closing():
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionResetError, BrokenPipeError):
            pass


class MetricServiceClient:
    """Producer side of the socket, used to push snapshots to the service."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._writer: asyncio.StreamWriter | None = None

    async def connect(self) -> None:
        if self._writer is not None:
            return
        _, self._writer = await asyncio.open_unix_connection(self.path)

    async def send_envelope(self, envelope: Mapping[str, Any]) -> None:
        if self._writer is None:
            raise RuntimeError('Client not connected')
        self._writer.write(encode_frame(envelope))
        await self._writer.drain()

    async def send_snapshot(self, snapshot: MetricSet | bytes | str) -> None:
        if isinstance(snapshot, MetricSet):
            payload = snapshot.model_dump_json()
        elif isinstance(snapshot, bytes):
            payload = snapshot.decode('utf-8')
        else:
            payload = snapshot
        await self.send_envelope({PAYLOAD_KEY: payload})

    async def close(self) -> None:
        if self._writer is None:
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionResetError, BrokenPipeError):
            pass
        self._writer = None
