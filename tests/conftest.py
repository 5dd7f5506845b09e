from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from metricservice.internal.schemas import MetricSet

T0 = datetime(2021, 9, 16, 21, 7, 34, 826514, tzinfo=timezone.utc)
T1 = datetime(2021, 9, 16, 21, 8, 10, tzinfo=timezone.utc)


def _value(
    data: bool | float | str, value: str = '', created: datetime = T0
) -> dict[str, Any]:
    return {
        'created': created.isoformat(),
        'last_updated': created.isoformat(),
        'value': value,
        'data': data,
    }


@pytest.fixture
def metric_value() -> Callable[..., dict[str, Any]]:
    return _value


@pytest.fixture
def snapshot_dict() -> dict[str, Any]:
    return {
        'metrics': {
            '/santa/events': {
                'description': 'Count of events on the host',
                'type': 9,
                'fields': {
                    'rule_type': [
                        _value(1, 'binary'),
                        _value(3, 'certificate'),
                    ],
                },
            },
            '/santa/using_endpoint_security_framework': {
                'description': 'Is santad using the endpoint security framework',
                'type': 1,
                'fields': {'': [_value(True)]},
            },
            '/proc/memory/resident_size': {
                'description': 'The resident set size of the process, in bytes',
                'type': 7,
                'fields': {'': [_value(987654321)]},
            },
            '/santa/mode': {
                'description': 'Operating mode of santad',
                'type': 6,
                'fields': {'': [_value('LOCKDOWN')]},
            },
            '/santa/rules': {
                'description': 'Number of rules',
                'type': 7,
                'fields': {
                    'rule_type,state': [
                        _value(1, 'binary,allow'),
                        _value(2, 'certificate,block'),
                    ],
                },
            },
            '/santa/cpu_load': {
                'description': 'CPU load',
                'type': 8,
                'fields': {'': [_value(0.75)]},
            },
        },
        'root_labels': {
            'hostname': 'host-1',
            'username': 'root',
            'host_id': 'AAAA-BBBB',
        },
    }


@pytest.fixture
def snapshot(snapshot_dict: dict[str, Any]) -> MetricSet:
    return MetricSet.model_validate(snapshot_dict)


@pytest.fixture
def end_timestamp() -> datetime:
    return T1
