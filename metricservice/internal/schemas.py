from datetime import datetime, timezone
from enum import Enum, IntEnum

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    StrictBool,
    StrictStr,
    field_validator,
    model_validator,
)


class MetricValueKind(str, Enum):
    BOOL = 'bool'
    NUMBER = 'number'
    STRING = 'string'


class ValueType(str, Enum):
    BOOL = 'BOOL'
    STRING = 'STRING'
    INT64 = 'INT64'
    DOUBLE = 'DOUBLE'


class StreamKind(str, Enum):
    GAUGE = 'GAUGE'
    CUMULATIVE = 'CUMULATIVE'


class MetricTypeCode(IntEnum):
    BOOL = 1
    STRING = 2
    INT64 = 3
    DOUBLE = 4
    BOOL_GAUGE = 5
    STRING_GAUGE = 6
    INT64_GAUGE = 7
    DOUBLE_GAUGE = 8
    INT64_COUNTER = 9

    @property
    def value_type(self) -> ValueType:
        return _VALUE_TYPES[self]

    @property
    def stream_kind(self) -> StreamKind | None:
        return _STREAM_KINDS.get(self)


_VALUE_TYPES: dict[MetricTypeCode, ValueType] = {
    MetricTypeCode.BOOL: ValueType.BOOL,
    MetricTypeCode.STRING: ValueType.STRING,
    MetricTypeCode.INT64: ValueType.INT64,
    MetricTypeCode.DOUBLE: ValueType.DOUBLE,
    MetricTypeCode.BOOL_GAUGE: ValueType.BOOL,
    MetricTypeCode.STRING_GAUGE: ValueType.STRING,
    MetricTypeCode.INT64_GAUGE: ValueType.INT64,
    MetricTypeCode.DOUBLE_GAUGE: ValueType.DOUBLE,
    MetricTypeCode.INT64_COUNTER: ValueType.INT64,
}

_STREAM_KINDS: dict[MetricTypeCode, StreamKind] = {
    MetricTypeCode.BOOL_GAUGE: StreamKind.GAUGE,
    MetricTypeCode.STRING_GAUGE: StreamKind.GAUGE,
    MetricTypeCode.INT64_GAUGE: StreamKind.GAUGE,
    MetricTypeCode.DOUBLE_GAUGE: StreamKind.GAUGE,
    MetricTypeCode.INT64_COUNTER: StreamKind.CUMULATIVE,
}


class MetricValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    created: AwareDatetime
    data: StrictBool | float | StrictStr
    last_updated: AwareDatetime
    # Comma-joined field values, positionally matching the field key.
    value: str

    @field_validator('created', 'last_updated')
    @classmethod
    def _to_utc(cls, v: datetime) -> datetime:
        return v.astimezone(timezone.utc)

    @model_validator(mode='after')
    def _check_interval(self) -> 'MetricValue':
        if self.created > self.last_updated:
            raise ValueError('created must not be later than last_updated')
        return self

    @property
    def kind(self) -> MetricValueKind:
        if isinstance(self.data, bool):
            return MetricValueKind.BOOL
        if isinstance(self.data, str):
            return MetricValueKind.STRING
        return MetricValueKind.NUMBER


class Metric(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    fields: dict[str, list[MetricValue]]
    type: MetricTypeCode


class MetricSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    metrics: dict[str, Metric]
    root_labels: dict[str, str]
