from typing import Literal

from pydantic_settings import BaseSettings

ConfigSource = Literal['env', 'redis']


class Settings(BaseSettings):
    model_config = {
        'extra': 'ignore',
        'env_file': '.env',
        'env_file_encoding': 'utf-8',
        'frozen': True,
    }

    SERVICE_NAME: str = 'metricservice'
    SERVICE_VERSION: str = '0.1.0'
    LOG_LEVEL: str = 'INFO'
    LOG_FORMAT: str = 'text'

    SOCKET_PATH: str = '/var/run/metricservice.sock'
    SOCKET_MODE: int = 0o660
    MAX_MESSAGE_SIZE: int = 16 * 1024 * 1024
    AUTHORIZED_UIDS: list[int] = []

    CONFIG_SOURCE: ConfigSource = 'env'
    REDIS_HOST: str = 'localhost'
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str | None = None
    REDIS_DB: int = 0
    REDIS_CONFIG_KEY: str = 'metricservice:config'

    HEALTH_SERVER_ENABLED: bool = True
    HEALTH_SERVER_HOST: str = '127.0.0.1'
    HEALTH_SERVER_PORT: int = 8080

    SHUTDOWN_TIMEOUT: float = 10.0


class ExportSettings(BaseSettings):
    """Export switches re-read on every snapshot, see export_config."""

    model_config = {
        'extra': 'ignore',
        'env_file': '.env',
        'env_file_encoding': 'utf-8',
    }

    EXPORT_METRICS: bool = False
    METRIC_FORMAT: int = 1
    METRIC_URL: str = ''
    METRIC_EXPORT_TIMEOUT: int = 30


settings = Settings()
