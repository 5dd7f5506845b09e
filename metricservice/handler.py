from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
import logging
from typing import Any, Protocol

from metricservice.authorization import PeerAuthorizer, PeerIdentity
from metricservice.converters import format_snapshot, resolve_format
from metricservice.decoder import decode_snapshot
from metricservice.exceptions import (
    AuthorizationDenied,
    ConnectionInterrupted,
    DeliveryFailure,
    MetricServiceError,
)
from metricservice.export_config import ConfigurationProvider
from metricservice.sinks import SinkDispatcher

logger = logging.getLogger(__name__)


class HandlerState(str, Enum):
    AWAITING_AUTHORIZATION = 'awaiting_authorization'
    SERVING = 'serving'
    CLOSED = 'closed'


class MessageConnection(Protocol):
    peer: PeerIdentity

    async def receive(self) -> Any | None: ...

    async def close(self) -> None: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionHandler:
    """Serves one producer connection until it closes or hits a fatal error.

    Messages are processed strictly one after another: the next envelope is
    not read before the previous snapshot's delivery attempt has finished.
    Delivery failures are logged and the connection keeps serving; every
    other error closes the connection.
    """

    def __init__(
        self,
        connection: MessageConnection,
        authorizer: PeerAuthorizer,
        config_provider: ConfigurationProvider,
        dispatcher: SinkDispatcher,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.connection = connection
        self.authorizer = authorizer
        self.config_provider = config_provider
        self.dispatcher = dispatcher
        self._clock = clock

        self.state = HandlerState.AWAITING_AUTHORIZATION
        self.snapshots_received = 0
        self.snapshots_delivered = 0

    @property
    def _peer_extra(self) -> dict[str, int | None]:
        peer = self.connection.peer
        return {'pid': peer.pid, 'uid': peer.uid}

    async def run(self) -> None:
        logger.info('New connection', extra=self._peer_extra)
        try:
            self._authorize()
            self.state = HandlerState.SERVING
            await self._serve()
        except AuthorizationDenied:
            logger.warning('Connection denied', extra=self._peer_extra)
        except MetricServiceError as e:
            logger.error(
                'Closing connection after fatal error',
                extra={
                    **self._peer_extra,
                    'error_type': type(e).__name__,
                    'error': str(e),
                },
            )
        except Exception:
            logger.exception(
                'Unexpected error in connection handler', extra=self._peer_extra
            )
        finally:
            self.state = HandlerState.CLOSED
            await self.connection.close()
            logger.info(
                'The connection was invalidated',
                extra={
                    **self._peer_extra,
                    'received': self.snapshots_received,
                    'delivered': self.snapshots_delivered,
                },
            )

    def _authorize(self) -> None:
        if not self.authorizer.is_authorized(self.connection.peer):
            raise AuthorizationDenied(f'Peer {self.connection.peer} is not authorized')

    async def _serve(self) -> None:
        while self.state is HandlerState.SERVING:
            try:
                envelope = await self.connection.receive()
            except ConnectionInterrupted as e:
                logger.warning(
                    'The connection was interrupted',
                    extra={**self._peer_extra, 'error': str(e)},
                )
                continue
            if envelope is None:
                break
            if not await self._handle_message(envelope):
                break

    async def _handle_message(self, envelope: Any) -> bool:
        snapshot = decode_snapshot(envelope)
        self.snapshots_received += 1

        config = await self.config_provider.snapshot()
        if not config.export_enabled:
            logger.info(
                'Received metrics message while not configured to export metrics',
                extra=self._peer_extra,
            )
            return False

        metric_format = resolve_format(config.format)
        payload = format_snapshot(snapshot, metric_format, self._clock())

        try:
            await self.dispatcher.dispatch(
                config.destination,
                payload,
                timeout=config.timeout_seconds,
                content_type=metric_format.content_type,
            )
        except DeliveryFailure as e:
            logger.warning(
                'Failed to deliver metrics',
                extra={
                    **self._peer_extra,
                    'destination': config.destination,
                    'error': str(e),
                },
            )
        else:
            self.snapshots_delivered += 1
            logger.debug(
                'Metrics delivered',
                extra={
                    'destination': config.destination,
                    'format': metric_format.name,
                    'metrics': len(snapshot.metrics),
                },
            )
        return True
