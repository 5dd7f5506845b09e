from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from metricservice.internal.schemas import StreamKind, ValueType


class MonarchModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class FieldValue(MonarchModel):
    name: str
    string_value: str


class FieldDescriptor(MonarchModel):
    name: str
    field_type: str = 'STRING'


class MetricData(MonarchModel):
    start_timestamp: datetime
    end_timestamp: datetime
    field: list[FieldValue] | None = None

    # Exactly one of these is set.
    bool_value: bool | None = None
    int64_value: int | None = None
    double_value: float | None = None
    string_value: str | None = None


class MetricsData(MonarchModel):
    metric_name: str
    description: str
    field_descriptor: list[FieldDescriptor] | None = None
    value_type: ValueType
    stream_kind: StreamKind | None = None
    data: list[MetricData]


class RootLabel(MonarchModel):
    key: str
    string_value: str


class MetricsCollection(MonarchModel):
    dataset: list[MetricsData] = Field(alias='metricsDataSet')
    root_labels: list[RootLabel]


class CollectionWrapper(MonarchModel):
    collection: list[MetricsCollection] = Field(alias='metricsCollection')

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
