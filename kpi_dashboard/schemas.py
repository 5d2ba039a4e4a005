"""
Pydantic models shared by the catalog, the KPI store and the HTTP layer.

Python attributes are snake_case; the JSON form (API bodies and the persisted
slot) uses camelCase aliases.
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AggregationKind(str, Enum):
    AVERAGE = 'average'
    MEDIAN = 'median'
    SUM = 'sum'
    INTEGRATION = 'integration'
    MIN = 'min'
    MAX = 'max'


class ChartKind(str, Enum):
    LINE = 'line'
    BAR = 'bar'
    STACKED_AREA = 'stackedArea'


AGGREGATION_LABELS: dict[AggregationKind, str] = {
    AggregationKind.AVERAGE: 'Average',
    AggregationKind.MEDIAN: 'Median',
    AggregationKind.SUM: 'Sum',
    AggregationKind.INTEGRATION: 'Integration',
    AggregationKind.MIN: 'Minimum',
    AggregationKind.MAX: 'Maximum',
}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode='json', exclude_none=True)


class VariableDescriptor(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    display_name: str
    unit: str
    help_text: str = ''


class MachineDescriptor(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    variables: tuple[VariableDescriptor, ...]

    @field_validator('variables')
    @classmethod
    def validate_unique_names(cls, v: tuple[VariableDescriptor, ...]) -> tuple[VariableDescriptor, ...]:
        names = [variable.name for variable in v]
        if len(names) != len(set(names)):
            raise ValueError('variable names must be unique within a machine')
        return v

    @property
    def variable_names(self) -> list[str]:
        return [variable.name for variable in self.variables]


class Thresholds(CamelModel):
    target: float | None = None
    warning: float | None = None
    critical: float | None = None


class KpiCreate(CamelModel):
    """Fields a client supplies when saving a new KPI."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='forbid')

    name: str = Field(..., min_length=1, max_length=200)
    machine_id: str = Field(..., min_length=1)
    formula: str
    aggregation_type: AggregationKind
    chart_type: ChartKind = ChartKind.LINE
    thresholds: Thresholds | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('name cannot be empty')
        return v.strip()


class KpiUpdate(CamelModel):
    """Partial update; only the fields a client actually sends are merged."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='forbid')

    name: str | None = Field(default=None, min_length=1, max_length=200)
    machine_id: str | None = Field(default=None, min_length=1)
    formula: str | None = None
    aggregation_type: AggregationKind | None = None
    chart_type: ChartKind | None = None
    thresholds: Thresholds | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError('name cannot be empty')
        return v.strip() if v is not None else v


class KpiRecord(CamelModel):
    id: str
    name: str
    machine_id: str
    formula: str
    aggregation_type: AggregationKind
    chart_type: ChartKind = ChartKind.LINE
    thresholds: Thresholds | None = None
    created_at: str
    updated_at: str
