from collections.abc import Callable
import logging

from aiohttp import web

logger = logging.getLogger(__name__)


class HealthServer:
    """Minimal async HTTP server reporting listener liveness."""

    def __init__(
        self, host: str, port: int, active_connections: Callable[[], int]
    ) -> None:
        self.host = host
        self.port = port
        self.active_connections = active_connections
        self._runner: web.AppRunner | None = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/health', self._health_handler)
        return app

    async def start(self) -> None:
        if self._runner is not None:
            return
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f'Health server started on {self.host}:{self.port}/health')

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info('Health server stopped')

    async def _health_handler(self, _request: web.Request) -> web.Response:
        return web.json_response(
            {'status': 'ok', 'active_connections': self.active_connections()}
        )
