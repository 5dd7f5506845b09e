import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError

from metricservice.config import ExportSettings
from metricservice.exceptions import ConfigurationUnavailable
from metricservice.export_config import (
    EnvConfigurationProvider,
    ExportConfig,
    RedisConfigurationProvider,
)

EXPORT_ENV = {
    'EXPORT_METRICS': 'true',
    'METRIC_FORMAT': '2',
    'METRIC_URL': 'https://collector.example.com/v1/metrics',
    'METRIC_EXPORT_TIMEOUT': '15',
}


@pytest.fixture
def export_env(monkeypatch, tmp_path):
    # Keep a developer's .env out of the picture.
    monkeypatch.chdir(tmp_path)
    for key, value in EXPORT_ENV.items():
        monkeypatch.setenv(key, value)
    return monkeypatch


@pytest.fixture
def redis_provider():
    provider = RedisConfigurationProvider(
        key='metricservice:config', host='localhost', port=6379, db=0, password=None
    )
    provider._redis = AsyncMock()
    return provider


@pytest.mark.asyncio
async def test_env_provider_reads_environment(export_env):
    config = await EnvConfigurationProvider().snapshot()

    assert config == ExportConfig(
        export_enabled=True,
        format=2,
        destination='https://collector.example.com/v1/metrics',
        timeout_seconds=15,
    )


@pytest.mark.asyncio
async def test_env_provider_sees_changes_between_snapshots(export_env):
    provider = EnvConfigurationProvider()
    first = await provider.snapshot()
    export_env.setenv('METRIC_EXPORT_TIMEOUT', '3')
    export_env.setenv('EXPORT_METRICS', 'false')
    second = await provider.snapshot()

    assert first.timeout_seconds == 15
    assert second.timeout_seconds == 3
    assert second.export_enabled is False


@pytest.mark.asyncio
async def test_env_provider_reads_settings_in_worker_thread(export_env):
    with patch(
        'metricservice.export_config.asyncio.to_thread', wraps=asyncio.to_thread
    ) as to_thread:
        config = await EnvConfigurationProvider().snapshot()

    to_thread.assert_called_once_with(ExportSettings)
    assert config.timeout_seconds == 15


@pytest.mark.asyncio
async def test_env_provider_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in EXPORT_ENV:
        monkeypatch.delenv(key, raising=False)

    config = await EnvConfigurationProvider().snapshot()

    assert config.export_enabled is False
    assert config.format == 1


@pytest.mark.asyncio
async def test_env_provider_keeps_unknown_format(export_env):
    export_env.setenv('METRIC_FORMAT', '9')

    config = await EnvConfigurationProvider().snapshot()

    assert config.format == 9


@pytest.mark.asyncio
async def test_env_provider_invalid_value(export_env):
    export_env.setenv('METRIC_EXPORT_TIMEOUT', 'soon')

    with pytest.raises(ConfigurationUnavailable):
        await EnvConfigurationProvider().snapshot()


@pytest.mark.asyncio
async def test_redis_provider_reads_hash(export_env, redis_provider):
    redis_provider._redis.hgetall.return_value = {
        'export_metrics': '1',
        'metric_format': '1',
        'metric_url': 'file:///var/db/santa/metrics.json',
        'metric_export_timeout': '7',
    }

    config = await redis_provider.snapshot()

    redis_provider._redis.hgetall.assert_awaited_once_with('metricservice:config')
    assert config == ExportConfig(
        export_enabled=True,
        format=1,
        destination='file:///var/db/santa/metrics.json',
        timeout_seconds=7,
    )


@pytest.mark.asyncio
async def test_redis_provider_falls_back_to_settings(export_env, redis_provider):
    redis_provider._redis.hgetall.return_value = {b'metric_export_timeout': b'60'}

    config = await redis_provider.snapshot()

    assert config.timeout_seconds == 60
    assert config.destination == EXPORT_ENV['METRIC_URL']
    assert config.format == 2


@pytest.mark.asyncio
async def test_redis_provider_connection_error(export_env, redis_provider):
    redis_provider._redis.hgetall.side_effect = ConnectionError('refused')

    with pytest.raises(ConfigurationUnavailable):
        await redis_provider.snapshot()


@pytest.mark.asyncio
async def test_redis_provider_invalid_value(export_env, redis_provider):
    redis_provider._redis.hgetall.return_value = {'metric_export_timeout': '-1'}

    with pytest.raises(ConfigurationUnavailable):
        await redis_provider.snapshot()


@pytest.mark.asyncio
async def test_redis_provider_not_started():
    provider = RedisConfigurationProvider(
        key='k', host='localhost', port=6379, db=0, password=None
    )

    with pytest.raises(ConfigurationUnavailable):
        await provider.snapshot()


@pytest.mark.asyncio
async def test_redis_provider_stop_closes_client(redis_provider):
    client = redis_provider._redis

    await redis_provider.stop()

    client.aclose.assert_awaited_once()
    assert redis_provider._redis is None
