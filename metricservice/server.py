import asyncio
import logging
import os
from pathlib import Path

from metricservice.authorization import PeerAuthorizer
from metricservice.export_config import ConfigurationProvider
from metricservice.handler import ConnectionHandler
from metricservice.sinks import SinkDispatcher
from metricservice.transport import Connection

logger = logging.getLogger(__name__)


class MetricServiceServer:
    """Accepts producer connections and serves each one in its own task."""

    def __init__(
        self,
        socket_path: str,
        authorizer: PeerAuthorizer,
        config_provider: ConfigurationProvider,
        dispatcher: SinkDispatcher,
        socket_mode: int = 0o660,
        max_message_size: int = 16 * 1024 * 1024,
    ) -> None:
        self.socket_path = socket_path
        self.authorizer = authorizer
        self.config_provider = config_provider
        self.dispatcher = dispatcher
        self.socket_mode = socket_mode
        self.max_message_size = max_message_size

        self._server: asyncio.AbstractServer | None = None
        self._handlers: set[asyncio.Task[None]] = set()

    @property
    def active_connections(self) -> int:
        return len(self._handlers)

    def _remove_stale_socket(self) -> None:
        path = Path(self.socket_path)
        if path.is_socket():
            logger.debug(
                'Removing stale socket', extra={'socket_path': self.socket_path}
            )
            path.unlink()

    async def start(self) -> None:
        if self._server is not None:
            logger.debug('Server already started')
            return
        self._remove_stale_socket()
        self._server = await asyncio.start_unix_server(
            self._on_connect, path=self.socket_path
        )
        os.chmod(self.socket_path, self.socket_mode)
        logger.info(
            'Waiting for new connections', extra={'socket_path': self.socket_path}
        )

    async def _on_connect(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        # asyncio runs every accepted connection's callback as its own task.
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)
        try:
            handler = ConnectionHandler(
                connection=Connection(reader, writer, self.max_message_size),
                authorizer=self.authorizer,
                config_provider=self.config_provider,
                dispatcher=self.dispatcher,
            )
            await handler.run()
        finally:
            if task is not None:
                self._handlers.discard(task)

    async def stop(self, timeout: float = 10.0) -> None:
        if self._server is None:
            return
        logger.info('Server is shutting down')
        self._server.close()

        handlers = set(self._handlers)
        if handlers:
            _, pending = await asyncio.wait(handlers, timeout=timeout)
            if pending:
                logger.warning(
                    'Connections did not close in time, cancelling...',
                    extra={'pending': len(pending)},
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        await self._server.wait_closed()
        self._server = None
        self._remove_stale_socket()
        logger.info('Server stopped')
