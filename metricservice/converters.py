from collections.abc import Callable
from datetime import datetime, timezone
from enum import IntEnum
import math
from typing import Any

from metricservice.exceptions import (
    InvalidMetricType,
    UnsupportedFormat,
    ValueKindMismatch,
)
from metricservice.internal.schemas import (
    Metric,
    MetricSet,
    MetricTypeCode,
    MetricValue,
    ValueType,
)
from metricservice.monarch.schemas import (
    CollectionWrapper,
    FieldDescriptor,
    FieldValue,
    MetricData,
    MetricsCollection,
    MetricsData,
    RootLabel,
)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class MetricFormat(IntEnum):
    RAW = 1
    MONARCH = 2

    @property
    def content_type(self) -> str:
        return 'application/json'


def resolve_format(code: int) -> MetricFormat:
    try:
        return MetricFormat(code)
    except ValueError:
        raise UnsupportedFormat(code) from None


def _type_code(metric: Metric) -> MetricTypeCode:
    try:
        return MetricTypeCode(metric.type)
    except ValueError:
        raise InvalidMetricType(metric.type) from None


def _to_int64(number: float) -> int:
    # Truncates toward zero and saturates at the int64 bounds; NaN maps to 0.
    if math.isnan(number):
        return 0
    if math.isinf(number):
        return INT64_MAX if number > 0 else INT64_MIN
    return max(INT64_MIN, min(INT64_MAX, int(number)))


def _encode_value(code: MetricTypeCode, entry: MetricValue) -> dict[str, Any]:
    data = entry.data
    value_type = code.value_type

    if value_type is ValueType.STRING:
        if not isinstance(data, str):
            raise ValueKindMismatch(
                f'{value_type.value} metric requires string data, got {entry.kind.value}'
            )
        return {'string_value': data}

    if isinstance(data, str):
        raise ValueKindMismatch(
            f'{value_type.value} metric requires numeric data, got string'
        )
    if value_type is ValueType.BOOL:
        return {'bool_value': _to_int64(float(data)) != 0}

    if isinstance(data, bool):
        raise ValueKindMismatch(
            f'{value_type.value} metric requires numeric data, got bool'
        )
    if value_type is ValueType.INT64:
        return {'int64_value': _to_int64(data)}
    return {'double_value': float(data)}


def _encode_fields(field_key: str, field_values: str) -> list[FieldValue] | None:
    if not field_key:
        return None
    # zip() stops at the shorter side when key and value arities differ.
    return [
        FieldValue(name=name, string_value=value)
        for name, value in zip(field_key.split(','), field_values.split(','))
    ]


def _encode_field_descriptors(metric: Metric) -> list[FieldDescriptor] | None:
    descriptors = [
        FieldDescriptor(name=name)
        for field_key in metric.fields
        if field_key
        for name in field_key.split(',')
    ]
    return descriptors or None


def _encode_data(
    code: MetricTypeCode, metric: Metric, end_timestamp: datetime
) -> list[MetricData]:
    return [
        MetricData(
            start_timestamp=entry.created,
            end_timestamp=end_timestamp,
            field=_encode_fields(field_key, entry.value),
            **_encode_value(code, entry),
        )
        for field_key, entries in metric.fields.items()
        for entry in entries
    ]


def _format_metric(name: str, metric: Metric, end_timestamp: datetime) -> MetricsData:
    code = _type_code(metric)
    return MetricsData(
        metric_name=name,
        description=metric.description,
        field_descriptor=_encode_field_descriptors(metric),
        value_type=code.value_type,
        stream_kind=code.stream_kind,
        data=_encode_data(code, metric, end_timestamp),
    )


def convert_to_monarch(
    snapshot: MetricSet, end_timestamp: datetime
) -> CollectionWrapper:
    end_timestamp = end_timestamp.astimezone(timezone.utc)
    root_labels = sorted(
        (
            RootLabel(key=key, string_value=value)
            for key, value in snapshot.root_labels.items()
        ),
        key=lambda label: label.key,
    )
    dataset = sorted(
        (
            _format_metric(name, metric, end_timestamp)
            for name, metric in snapshot.metrics.items()
        ),
        key=lambda metrics_data: metrics_data.metric_name,
    )
    return CollectionWrapper(
        collection=[MetricsCollection(dataset=dataset, root_labels=root_labels)]
    )


def convert_to_raw(snapshot: MetricSet) -> str:
    return snapshot.model_dump_json()


_FORMATTERS: dict[MetricFormat, Callable[[MetricSet, datetime], str]] = {
    MetricFormat.RAW: lambda snapshot, _end_timestamp: convert_to_raw(snapshot),
    MetricFormat.MONARCH: lambda snapshot, end_timestamp: convert_to_monarch(
        snapshot, end_timestamp
    ).to_json(),
}


def format_snapshot(
    snapshot: MetricSet, metric_format: int, end_timestamp: datetime
) -> str:
    return _FORMATTERS[resolve_format(metric_format)](snapshot, end_timestamp)
