"""
Typed records shared across the pipeline.

Dataclasses for the deterministic half (parsed tables, aggregates,
benchmarks, run results); pydantic models for anything that comes back from
a generative model and must be validated before it is trusted.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# A parsed cell is resolved once, during parsing, to exactly one of these.
Cell = Union[bool, int, float, str, None]
Row = Dict[str, Cell]

DataCategory = Literal["own_team", "opponent"]
ProcessingStatus = Literal["pending", "processing", "completed", "failed"]
InsightType = Literal["strength", "weakness", "trend", "recommendation", "tendency", "alert"]
Assessment = Literal["elite", "above_average", "average", "below_average", "needs_work"]

SHEET_COLUMN = "_sheet"


# ── Deterministic records ───────────────────────────────────────────────

@dataclass
class ParsedTable:
    headers: List[str]
    rows: List[Row]
    warnings: List[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass
class AggregateStat:
    type: Literal["numeric", "text", "mixed"]
    count: int
    null_count: int
    min: Optional[float] = None
    max: Optional[float] = None
    sum: Optional[float] = None
    avg: Optional[float] = None
    unique_values: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass
class BenchmarkComparison:
    metric: str
    value: float
    league_average: float
    percentile: int
    assessment: Assessment
    source_column: str = ""


@dataclass
class AnalysisContext:
    """Who the data is about; passed to every AI call."""
    data_category: DataCategory
    subject_name: Optional[str] = None
    sport: Optional[str] = None
    row_count: int = 0

    @property
    def is_own_team(self) -> bool:
        return self.data_category == "own_team"


@dataclass
class ReportContext:
    report_type: str
    report_category: DataCategory
    player_name: Optional[str] = None
    opponent_name: Optional[str] = None
    date_range: Optional[str] = None
    focus_areas: List[str] = field(default_factory=list)


@dataclass
class ProcessingResult:
    success: bool
    file_id: str
    status: ProcessingStatus
    row_count: int
    insight_count: int
    errors: List[str]


# ── AI outputs ──────────────────────────────────────────────────────────

_DATA_TYPES = {"date", "number", "text", "boolean"}
_IMPORTANCE_RANK = {"high": 0, "medium": 1, "low": 2}


def _clamp_unit(value: Any) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, value))


class ColumnInterpretation(BaseModel):
    model_config = ConfigDict(extra="allow")

    interpreted_as: str
    data_type: str = "text"
    description: str = ""
    is_key_metric: bool = False
    sample_values: List[str] = Field(default_factory=list)

    @field_validator("data_type", mode="before")
    @classmethod
    def _normalise_type(cls, v):
        v = str(v or "").strip().lower()
        return v if v in _DATA_TYPES else "text"

    @field_validator("sample_values", mode="before")
    @classmethod
    def _stringify_samples(cls, v):
        if not isinstance(v, list):
            return []
        return [str(s) for s in v if s is not None]


class RecommendedMetric(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    description: str = ""
    columns_used: List[str] = Field(default_factory=list)
    formula: Optional[str] = None


class ColumnInterpretationResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    detected_sport: str = "other"
    confidence: float = 0.0
    column_interpretations: Dict[str, ColumnInterpretation]
    recommended_metrics: List[RecommendedMetric] = Field(default_factory=list)
    data_quality_notes: List[str] = Field(default_factory=list)
    suggested_report_sections: List[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v):
        return _clamp_unit(v)

    @field_validator("detected_sport", mode="before")
    @classmethod
    def _lower(cls, v):
        return str(v or "other").strip().lower()

    def date_columns(self) -> List[str]:
        return [name for name, ci in self.column_interpretations.items() if ci.data_type == "date"]


class Insight(BaseModel):
    type: InsightType
    title: str
    description: str = ""
    confidence: float = 0.5
    supporting_data: Dict[str, Any] = Field(default_factory=dict)
    action_items: List[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, v):
        return str(v or "").strip().lower()

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v):
        return _clamp_unit(v)

    @field_validator("title", mode="after")
    @classmethod
    def _short_title(cls, v):
        return v[:100]

    @field_validator("description", mode="after")
    @classmethod
    def _short_description(cls, v):
        return v[:500]

    @field_validator("supporting_data", mode="before")
    @classmethod
    def _dict_only(cls, v):
        return v if isinstance(v, dict) else {}

    @field_validator("action_items", mode="before")
    @classmethod
    def _str_items(cls, v):
        if not isinstance(v, list):
            return []
        return [str(a) for a in v if a]


class KeyPoint(BaseModel):
    model_config = ConfigDict(extra="allow")

    point: str
    supporting_data: Dict[str, Any] = Field(default_factory=dict)
    importance: str = "medium"

    @field_validator("importance", mode="before")
    @classmethod
    def _normalise(cls, v):
        v = str(v or "").strip().lower()
        return v if v in _IMPORTANCE_RANK else "medium"


class ReportSection(BaseModel):
    model_config = ConfigDict(extra="allow")

    section_title: str
    section_type: str = "analysis"
    content: str = ""
    key_points: List[KeyPoint] = Field(default_factory=list)

    @field_validator("key_points", mode="after")
    @classmethod
    def _rank(cls, v):
        return sorted(v, key=lambda kp: _IMPORTANCE_RANK[kp.importance])


class Report(BaseModel):
    """Structured scouting / performance report; extra keys are preserved."""
    model_config = ConfigDict(extra="allow")

    executive_summary: str
    dynamic_sections: List[ReportSection] = Field(default_factory=list)
    key_metrics_table: Dict[str, Any] = Field(default_factory=dict)
    strengths: List[Dict[str, Any]] = Field(default_factory=list)
    areas_for_development: List[Dict[str, Any]] = Field(default_factory=list)
    action_plan: List[Dict[str, Any]] = Field(default_factory=list)
    additional_observations: str = ""
    suggested_visualizations: List[Dict[str, Any]] = Field(default_factory=list)


@dataclass
class ComposedReport:
    draft: Report
    final: Report
    enhanced: bool
    enhancement_error: Optional[str] = None
    enhancement_message: Optional[str] = None
