import asyncio
import logging
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from metricservice.config import ExportSettings
from metricservice.exceptions import ConfigurationUnavailable

logger = logging.getLogger(__name__)


class ExportConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    export_enabled: bool
    # Kept as a raw code so unknown formats fail per message, not at read time.
    format: int
    destination: str
    timeout_seconds: int = Field(ge=0)

    @classmethod
    def from_settings(cls, export_settings: ExportSettings) -> 'ExportConfig':
        return cls(
            export_enabled=export_settings.EXPORT_METRICS,
            format=export_settings.METRIC_FORMAT,
            destination=export_settings.METRIC_URL,
            timeout_seconds=export_settings.METRIC_EXPORT_TIMEOUT,
        )


class ConfigurationProvider(Protocol):
    async def snapshot(self) -> ExportConfig: ...


class EnvConfigurationProvider:
    """Reads the environment and .env file anew for every snapshot."""

    async def snapshot(self) -> ExportConfig:
        try:
            export_settings = await asyncio.to_thread(ExportSettings)
            return ExportConfig.from_settings(export_settings)
        except ValidationError as e:
            raise ConfigurationUnavailable(f'Invalid export settings: {e}') from e


class RedisConfigurationProvider:
    _FIELDS = {
        'export_metrics': 'export_enabled',
        'metric_format': 'format',
        'metric_url': 'destination',
        'metric_export_timeout': 'timeout_seconds',
    }

    def __init__(
        self,
        key: str,
        host: str,
        port: int,
        db: int,
        password: str | None,
        ssl: bool = False,
    ):
        self.key = key
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.ssl = ssl

        self._redis: Redis | None = None

    async def start(self) -> None:
        if self._redis is not None:
            logger.debug('Redis configuration provider already initialized')
            return

        logger.info(
            'Initializing Redis configuration provider',
            extra={
                'key': self.key,
                'host': self.host,
                'port': self.port,
                'db': self.db,
            },
        )
        try:
            self._redis = Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                password=self.password,
                ssl=self.ssl,
                decode_responses=True,
            )
            await self._redis.ping()
        except Exception:
            logger.exception('Failed to start Redis configuration provider')
            raise

    async def stop(self) -> None:
        if self._redis:
            logger.info('Stopping Redis configuration provider')
            await self._redis.aclose()
            self._redis = None
        logger.info('Redis configuration provider stopped')

    def _merge(self, stored: dict[Any, Any]) -> dict[str, Any]:
        merged = ExportConfig.from_settings(ExportSettings()).model_dump()
        for redis_field, config_field in self._FIELDS.items():
            value = stored.get(redis_field)
            if value is None:
                value = stored.get(redis_field.encode())
            if value is not None:
                merged[config_field] = (
                    value.decode('utf-8') if isinstance(value, bytes) else value
                )
        return merged

    async def snapshot(self) -> ExportConfig:
        if self._redis is None:
            raise ConfigurationUnavailable('Redis configuration provider not started')
        try:
            stored = await self._redis.hgetall(self.key)
        except RedisError as e:
            raise ConfigurationUnavailable(
                f'Failed to read export configuration from Redis: {e}'
            ) from e
        try:
            return ExportConfig.model_validate(self._merge(stored))
        except ValidationError as e:
            raise ConfigurationUnavailable(f'Invalid export configuration: {e}') from e
