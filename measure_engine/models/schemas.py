"""
Pydantic models for measure definitions, execution context, and API contracts.

Measure definitions are data: they are loaded from JSON at startup, validated
here, and registered once. All definition models are frozen so a registered
measure cannot change during a run.

Field names follow the camelCase spelling used by the stored definitions
(sortOrder, tableKey, timeIntelligence, ...), so a definition file validates
without an alias layer.

The component source is an explicit tagged union discriminated on ``type``:
TableSource | MeasureSource | ConditionalSource. Conditional branches may only
be table or measure sources.

All models use Pydantic v2 syntax.
"""

from datetime import date as DateType
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from measure_engine.models.enums import (
    FILTER_OPERATOR_ALIASES,
    AggregationType,
    FilterLogicType,
    FilterOperator,
    OperationType,
    ThresholdOperator,
    TimeIntelligenceType,
)


class _Definition(BaseModel):
    """Base for immutable definition models."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


# =============================================================================
# Filters
# =============================================================================


class FilterCondition(_Definition):
    """A single column predicate."""

    id: Optional[str] = None
    column: str = Field(..., min_length=1)
    operator: FilterOperator
    value: Optional[Any] = None
    values: Optional[List[Any]] = None

    @field_validator('operator', mode='before')
    @classmethod
    def _resolve_symbolic_operator(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip() in FILTER_OPERATOR_ALIASES:
            return FILTER_OPERATOR_ALIASES[value.strip()]
        return value


class FilterLogic(_Definition):
    """AND/OR combination of filter conditions. No conditions passes everything."""

    logic: FilterLogicType = FilterLogicType.AND
    conditions: List[FilterCondition] = Field(default_factory=list)


# =============================================================================
# Time Intelligence
# =============================================================================


class TimeIntelligence(_Definition):
    """
    Relative time-window directive.

    Explicit startDate/endDate always override the computed bounds.
    """

    type: TimeIntelligenceType
    periods: Optional[int] = Field(default=None, ge=1)
    dateField: Optional[str] = None
    startDate: Optional[DateType] = None
    endDate: Optional[DateType] = None


# =============================================================================
# Component Sources (tagged union)
# =============================================================================


class TableSource(_Definition):
    """Aggregate ``fieldName`` over records of dataset ``tableKey``."""

    type: Literal['table'] = 'table'
    tableKey: str = Field(..., min_length=1)
    fieldName: Optional[str] = None
    quantityField: Optional[str] = None

    @property
    def field(self) -> str:
        return self.fieldName or self.quantityField or 'quantity'


class MeasureSource(_Definition):
    """Scalar result of another registered measure."""

    type: Literal['measure'] = 'measure'
    measureKey: str = Field(..., min_length=1)


class ConditionalSource(_Definition):
    """No direct data; the owning component's conditionalConfig decides."""

    type: Literal['conditional'] = 'conditional'


ComponentSource = Annotated[
    Union[TableSource, MeasureSource, ConditionalSource],
    Field(discriminator='type'),
]

BranchSource = Annotated[
    Union[TableSource, MeasureSource],
    Field(discriminator='type'),
]


class ConditionalConditions(_Definition):
    """
    Runtime predicates for a conditional component.

    Only declared (non-None) predicates are checked; each must equal its
    declared value for the primary source to be chosen.
    """

    hasData: Optional[bool] = None
    isPastMonth: Optional[bool] = None
    isFutureMonth: Optional[bool] = None
    isCurrentMonth: Optional[bool] = None

    def declared(self) -> Dict[str, bool]:
        return {
            name: expected
            for name, expected in self.model_dump().items()
            if expected is not None
        }


class ConditionalConfig(_Definition):
    """Primary/fallback pair chosen by the declared conditions."""

    conditions: ConditionalConditions = Field(default_factory=ConditionalConditions)
    primarySource: BranchSource
    fallbackSource: BranchSource


# =============================================================================
# Measures
# =============================================================================


class MeasureComponent(_Definition):
    """
    One term of a measure's formula.

    ``sortOrder`` defines fold order; ties are broken by declaration order.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    source: ComponentSource
    operation: OperationType = OperationType.SUM
    aggregation: AggregationType = AggregationType.SUM
    filters: Optional[FilterLogic] = None
    sortOrder: int
    conditionalConfig: Optional[ConditionalConfig] = None
    timeIntelligence: Optional[TimeIntelligence] = None
    metadata: Optional[Dict[str, Any]] = None

    @model_validator(mode='after')
    def _conditional_requires_config(self) -> 'MeasureComponent':
        if isinstance(self.source, ConditionalSource) and self.conditionalConfig is None:
            raise ValueError(
                f'Component "{self.id}" has a conditional source but no conditionalConfig'
            )
        if not isinstance(self.source, ConditionalSource) and self.conditionalConfig is not None:
            raise ValueError(
                f'Component "{self.id}" has a {self.source.type} source but carries a conditionalConfig'
            )
        return self

    def referenced_measure_keys(self) -> List[str]:
        """Measure keys this component depends on, including conditional branches."""
        keys: List[str] = []
        if isinstance(self.source, MeasureSource):
            keys.append(self.source.measureKey)
        if self.conditionalConfig is not None:
            for branch in (self.conditionalConfig.primarySource,
                           self.conditionalConfig.fallbackSource):
                if isinstance(branch, MeasureSource) and branch.measureKey not in keys:
                    keys.append(branch.measureKey)
        return keys


class MeasureThreshold(_Definition):
    """Banding threshold attached to a measure's metadata."""

    key: str
    name: str
    value: float
    operator: ThresholdOperator = ThresholdOperator.GREATER_THAN_OR_EQUAL
    description: Optional[str] = None


class MeasureMetadata(_Definition):
    """Descriptive metadata; unknown keys are preserved."""

    model_config = ConfigDict(frozen=True, extra='allow')

    category: Optional[str] = None
    unit: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    version: Optional[str] = None
    thresholds: List[MeasureThreshold] = Field(default_factory=list)


class Measure(_Definition):
    """A named, composable formula definition."""

    key: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    components: List[MeasureComponent] = Field(..., min_length=1)
    metadata: Optional[MeasureMetadata] = None
    timeIntelligence: Optional[TimeIntelligence] = None

    def sorted_components(self) -> List[MeasureComponent]:
        """Components in fold order (stable sort keeps declaration order on ties)."""
        return sorted(self.components, key=lambda c: c.sortOrder)

    def referenced_measure_keys(self) -> List[str]:
        keys: List[str] = []
        for component in self.components:
            for key in component.referenced_measure_keys():
                if key not in keys:
                    keys.append(key)
        return keys


# =============================================================================
# Execution Context
# =============================================================================


class DateRange(BaseModel):
    """Explicit half-open date range ``[start, end)``."""
    model_config = ConfigDict(frozen=True)

    start: DateType
    end: DateType


class ExecutionContext(BaseModel):
    """
    Point-in-time parameters a measure is evaluated against.

    Extra keys are kept and passed to the data source as column filters.
    ``countryId``/``skuId`` are accepted as spellings of entity/dimension.
    """
    model_config = ConfigDict(frozen=True, extra='allow', populate_by_name=True)

    entityId: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices('entityId', 'countryId'),
    )
    dimensionId: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices('dimensionId', 'skuId'),
    )
    year: Optional[int] = Field(default=None, ge=1)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    date: Optional[DateType] = None
    dateRange: Optional[DateRange] = None
    timeIntelligence: Optional[TimeIntelligence] = None

    def extra_filters(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def with_time_intelligence(self, directive: Optional[TimeIntelligence]) -> 'ExecutionContext':
        return self.model_copy(update={'timeIntelligence': directive})

    def with_period(self, year: int, month: int) -> 'ExecutionContext':
        return self.model_copy(update={
            'year': year,
            'month': month,
            'date': None,
            'dateRange': None,
        })


# =============================================================================
# API Contracts
# =============================================================================


class ExecuteMeasureRequest(BaseModel):
    """Body for POST /measures/execute."""
    measureKey: str = Field(..., min_length=1)
    filters: Dict[str, Any] = Field(default_factory=dict)
    context: ExecutionContext = Field(default_factory=ExecutionContext)


class ExecuteMeasureResponse(BaseModel):
    measureKey: str
    value: Optional[float] = None


class ExecuteBatchRequest(BaseModel):
    """Body for POST /measures/execute-batch."""
    measureKeys: List[str] = Field(default_factory=list)
    filters: Dict[str, Any] = Field(default_factory=dict)
    context: ExecutionContext = Field(default_factory=ExecutionContext)


class ExecuteBatchResponse(BaseModel):
    results: Dict[str, float] = Field(default_factory=dict)


class ExecutionPlanRequest(BaseModel):
    """Body for POST /measures/plan."""
    measureKeys: List[str] = Field(..., min_length=1)


class ExecutionPlanResponse(BaseModel):
    executionOrder: List[str]
    levels: List[List[str]]
    graph: Dict[str, List[str]]


class MeasureCatalogItem(BaseModel):
    """Summary row returned by GET /measures."""
    key: str
    name: str
    description: Optional[str] = None
    componentCount: int
    category: Optional[str] = None
    unit: Optional[str] = None
    dependencies: List[str] = Field(default_factory=list)
