# -*- coding: utf-8 -*-
"""Analysis — Pydantic models."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

RESULT_ITEM_COUNT = 5
INSIGHT_PLACEHOLDER = "Insufficient data to provide additional insight."
RECOMMENDATION_PLACEHOLDER = "Insufficient data to provide an additional recommendation."


class AnalysisKind(str, Enum):
    nutrition = "nutrition"
    labwork = "labwork"
    correlation = "correlation"
    item_lookup = "item-lookup"
    item_bulk_lookup = "item-bulk-lookup"
    substance_lookup = "substance-lookup"

    @property
    def is_time_series(self) -> bool:
        return self in TIME_SERIES_KINDS

    @property
    def is_lookup(self) -> bool:
        return not self.is_time_series


TIME_SERIES_KINDS = frozenset(
    {AnalysisKind.nutrition, AnalysisKind.labwork, AnalysisKind.correlation}
)


class SnapshotRef(BaseModel):
    """What to analyze: a user, a kind, and a time window or explicit ids/queries."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    analysis_kind: AnalysisKind
    start: Optional[str] = Field(None, description="YYYY-MM-DD")
    end: Optional[str] = Field(None, description="YYYY-MM-DD")
    record_ids: List[str] = Field(default_factory=list)
    queries: List[str] = Field(default_factory=list, description="Free-text items for lookup kinds")


class InputBundle(BaseModel):
    model_config = ConfigDict(frozen=True)

    analysis_kind: AnalysisKind
    profile: Dict[str, Any] = Field(default_factory=dict)
    windowed_records: List[Dict[str, Any]] = Field(default_factory=list)
    derived_totals: Dict[str, float] = Field(default_factory=dict)
    distinct_day_count: int = Field(0, ge=0)
    window_start: Optional[str] = None
    window_end: Optional[str] = None


class StructuredResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    insights: List[str]
    recommendations: List[str]
    confidence: float = Field(..., ge=0, le=1)
    summary: str
    detailed_analysis: str
    model_id: str
    details: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("insights", "recommendations")
    @classmethod
    def _exactly_five(cls, value: List[str]) -> List[str]:
        if len(value) != RESULT_ITEM_COUNT:
            raise ValueError(f"expected exactly {RESULT_ITEM_COUNT} entries, got {len(value)}")
        return value


class SecondOpinion(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    model_id: str
    created_at: str


class AnalysisRecord(BaseModel):
    id: str
    user_ref: str
    analysis_kind: AnalysisKind
    created_at: str
    input_bundle: InputBundle
    result: StructuredResult
    fallback: bool = False
    second_opinions: List[SecondOpinion] = Field(default_factory=list)

    @property
    def second_opinion(self) -> Optional[SecondOpinion]:
        return self.second_opinions[-1] if self.second_opinions else None


# ---------- API payloads ----------


class AnalysisRunRequest(BaseModel):
    analysis_kind: AnalysisKind
    start: Optional[str] = Field(None, description="YYYY-MM-DD")
    end: Optional[str] = Field(None, description="YYYY-MM-DD")
    days: Optional[int] = Field(None, ge=1, le=365, description="Window ending today; ignored when start is set")
    record_ids: List[str] = Field(default_factory=list)
    queries: List[str] = Field(default_factory=list, max_length=50)
    backend: Optional[str] = Field(None, description="<provider>/<model>; defaults to the configured backend")


class SecondOpinionRequest(BaseModel):
    backend: Optional[str] = Field(None, description="Alternate <provider>/<model>")


class AnalysisListItem(BaseModel):
    id: str
    analysis_kind: AnalysisKind
    created_at: str
    summary: str
    confidence: float
    model_id: str
    fallback: bool = False
    second_opinion_models: List[str] = Field(default_factory=list)


class AnalysisListResponse(BaseModel):
    count: int
    items: List[AnalysisListItem]


class ModelOption(BaseModel):
    value: str
    provider: str
    family: str
    default: bool = False
