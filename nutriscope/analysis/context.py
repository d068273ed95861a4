# -*- coding: utf-8 -*-
"""Analysis context assembly.

Builds the self-contained InputBundle handed to the prompt composer from:
- the user's profile (all attributes optional)
- the records relevant to the analysis kind, restricted to the time window
- aggregates derived from those records (totals, per-day averages, counts)

Lookup kinds carry their free-text queries as the windowed records and do not
read any stored data.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Protocol, Tuple

from ..records.models import FOOD_METRICS, LabStatus, UserProfile
from ..records.storage import FileSnapshotReader
from .errors import NoDataError
from .models import AnalysisKind, InputBundle, SnapshotRef

log = logging.getLogger(__name__)

_ABNORMAL = {LabStatus.low.value, LabStatus.high.value, LabStatus.critical.value}


class SnapshotReader(Protocol):
    def fetch_profile(self, user_id: str) -> Optional[UserProfile]:
        ...

    def fetch_records_for_analysis(
        self,
        user_id: str,
        kind: str,
        *,
        start: Optional[str] = None,
        end: Optional[str] = None,
        record_ids: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        ...


def resolve_window(
    *,
    start: Optional[str],
    end: Optional[str],
    days: Optional[int],
    today: Optional[date] = None,
) -> Tuple[Optional[str], Optional[str]]:
    """Explicit dates win; otherwise `days` means a window ending today."""
    if start or end or not days:
        return start, end
    end_day = today or date.today()
    start_day = end_day - timedelta(days=days)
    return start_day.isoformat(), end_day.isoformat()


def _sum_metric(records: List[Dict[str, Any]], metric: str) -> float:
    total = 0.0
    for record in records:
        totals = record.get("totals") or {}
        try:
            total += float(totals.get(metric) or 0.0)
        except (TypeError, ValueError):
            continue
    return round(total, 2)


def _food_totals(food: List[Dict[str, Any]], day_count: int) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for metric in FOOD_METRICS:
        totals[metric] = _sum_metric(food, metric)
    if day_count > 0:
        for metric in FOOD_METRICS:
            totals[f"{metric}_per_day"] = round(totals[metric] / day_count, 1)
    totals["food_entry_count"] = float(len(food))
    return totals


def _lab_totals(labs: List[Dict[str, Any]]) -> Dict[str, float]:
    value_count = 0
    abnormal = 0
    for panel in labs:
        for value in panel.get("values") or []:
            value_count += 1
            if value.get("status") in _ABNORMAL:
                abnormal += 1
    return {
        "lab_panel_count": float(len(labs)),
        "lab_value_count": float(value_count),
        "abnormal_value_count": float(abnormal),
    }


def distinct_days(records: List[Dict[str, Any]]) -> int:
    return len({r["date"] for r in records if r.get("date")})


def _lookup_bundle(ref: SnapshotRef) -> InputBundle:
    queries = [q.strip() for q in ref.queries if q and q.strip()]
    if not queries:
        raise NoDataError(f"No query supplied for {ref.analysis_kind.value}")
    if ref.analysis_kind != AnalysisKind.item_bulk_lookup and len(queries) > 1:
        log.info("%s takes a single query; ignoring %d extra", ref.analysis_kind.value, len(queries) - 1)
        queries = queries[:1]
    records = [
        {"record_type": "query", "id": str(i + 1), "date": None, "query": q}
        for i, q in enumerate(queries)
    ]
    return InputBundle(
        analysis_kind=ref.analysis_kind,
        windowed_records=records,
        derived_totals={"query_count": float(len(records))},
        distinct_day_count=0,
    )


def build_input_bundle(ref: SnapshotRef, reader: Optional[SnapshotReader] = None) -> InputBundle:
    kind = ref.analysis_kind
    if kind.is_lookup:
        return _lookup_bundle(ref)

    reader = reader or FileSnapshotReader()
    records = reader.fetch_records_for_analysis(
        ref.user_id,
        kind.value,
        start=ref.start,
        end=ref.end,
        record_ids=list(ref.record_ids) or None,
    )
    food = [r for r in records if r.get("record_type") == "food"]
    labs = [r for r in records if r.get("record_type") == "lab"]

    if kind in {AnalysisKind.nutrition, AnalysisKind.correlation} and not food:
        raise NoDataError("No food logs found for the specified date range")
    if kind in {AnalysisKind.labwork, AnalysisKind.correlation} and not labs:
        raise NoDataError("No lab results found for analysis")

    # Coverage counts days of the primary series only: food logs, or lab panels for labwork.
    day_count = distinct_days(labs if kind == AnalysisKind.labwork else food)
    derived: Dict[str, float] = {}
    if kind in {AnalysisKind.nutrition, AnalysisKind.correlation}:
        derived.update(_food_totals(food, day_count))
    if kind in {AnalysisKind.labwork, AnalysisKind.correlation}:
        derived.update(_lab_totals(labs))
    if kind == AnalysisKind.nutrition:
        derived["supplement_regimen_count"] = float(
            sum(1 for r in records if r.get("record_type") == "supplement_regimen")
        )
        derived["supplement_intake_count"] = float(
            sum(1 for r in records if r.get("record_type") == "supplement_intake")
        )

    profile = reader.fetch_profile(ref.user_id)
    bundle = InputBundle(
        analysis_kind=kind,
        profile=profile.model_dump(exclude_none=True) if profile else {},
        windowed_records=records,
        derived_totals=derived,
        distinct_day_count=day_count,
        window_start=ref.start,
        window_end=ref.end,
    )
    log.debug(
        "aggregated %s bundle for user %s: %d records over %d days",
        kind.value,
        ref.user_id,
        len(records),
        day_count,
    )
    return bundle
