import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import logging
import signal

from metricservice.authorization import UidAuthorizer
from metricservice.config import Settings, settings
from metricservice.export_config import (
    ConfigurationProvider,
    EnvConfigurationProvider,
    RedisConfigurationProvider,
)
from metricservice.health_server import HealthServer
from metricservice.log_config_loader import setup_logging
from metricservice.server import MetricServiceServer
from metricservice.sinks import SinkDispatcher

logger = logging.getLogger(__name__)


def build_config_provider(config: Settings) -> ConfigurationProvider:
    if config.CONFIG_SOURCE == 'redis':
        return RedisConfigurationProvider(
            key=config.REDIS_CONFIG_KEY,
            host=config.REDIS_HOST,
            port=config.REDIS_PORT,
            db=config.REDIS_DB,
            password=config.REDIS_PASSWORD,
        )
    return EnvConfigurationProvider()


@asynccontextmanager
async def lifespan(config: Settings) -> AsyncGenerator[MetricServiceServer, None]:
    config_provider = build_config_provider(config)
    if isinstance(config_provider, RedisConfigurationProvider):
        await config_provider.start()
    dispatcher = SinkDispatcher()
    await dispatcher.start()

    server = MetricServiceServer(
        socket_path=config.SOCKET_PATH,
        authorizer=UidAuthorizer(config.AUTHORIZED_UIDS),
        config_provider=config_provider,
        dispatcher=dispatcher,
        socket_mode=config.SOCKET_MODE,
        max_message_size=config.MAX_MESSAGE_SIZE,
    )
    health_server = HealthServer(
        config.HEALTH_SERVER_HOST,
        config.HEALTH_SERVER_PORT,
        active_connections=lambda: server.active_connections,
    )

    await server.start()
    if config.HEALTH_SERVER_ENABLED:
        await health_server.start()
    try:
        yield server
    finally:
        logger.info('Shutting down...')
        await server.stop(timeout=config.SHUTDOWN_TIMEOUT)
        cleanups = [health_server.stop(), dispatcher.stop()]
        if isinstance(config_provider, RedisConfigurationProvider):
            cleanups.append(config_provider.stop())
        await asyncio.gather(*cleanups, return_exceptions=True)
        logger.info('Shutdown complete')


async def main() -> None:
    setup_logging(
        service_name=settings.SERVICE_NAME,
        level=settings.LOG_LEVEL,
        log_format=settings.LOG_FORMAT,
        version=settings.SERVICE_VERSION,
    )
    shutdown_event = asyncio.Event()

    for sig in [signal.SIGTERM, signal.SIGINT]:
        asyncio.get_running_loop().add_signal_handler(sig, shutdown_event.set)

    async with lifespan(settings):
        await shutdown_event.wait()


def run() -> None:
    asyncio.run(main())


if __name__ == '__main__':
    run()
