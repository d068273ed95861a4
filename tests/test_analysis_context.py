# -*- coding: utf-8 -*-

from __future__ import annotations

import unittest
from datetime import date
from typing import Any, Dict, List, Optional

import support

from nutriscope.analysis.context import build_input_bundle, resolve_window
from nutriscope.analysis.errors import NoDataError
from nutriscope.analysis.models import AnalysisKind, SnapshotRef
from nutriscope.records.models import UserProfile
from nutriscope.records.storage import (
    FileSnapshotReader,
    create_food_entry,
    create_lab_panel,
    create_supplement_intake,
    create_supplement_regimen,
    save_profile,
)

USER = "user-1"


class _StaticReader:
    def __init__(self, records: List[Dict[str, Any]], profile: Optional[UserProfile] = None) -> None:
        self.records = records
        self.profile = profile
        self.calls: List[str] = []

    def fetch_profile(self, user_id: str) -> Optional[UserProfile]:
        return self.profile

    def fetch_records_for_analysis(self, user_id, kind, *, start=None, end=None, record_ids=None):
        self.calls.append(kind)
        return list(self.records)


def _food(day: str, calories: float, protein: float) -> Dict[str, Any]:
    return {
        "record_type": "food",
        "id": f"f-{day}-{calories}",
        "date": day,
        "meal_type": "lunch",
        "items": [{"name": "meal"}],
        "totals": {"calories": calories, "protein": protein},
    }


class TestResolveWindow(unittest.TestCase):
    def test_days_window_ends_today(self) -> None:
        self.assertEqual(
            resolve_window(start=None, end=None, days=7, today=date(2026, 1, 10)),
            ("2026-01-03", "2026-01-10"),
        )

    def test_explicit_dates_win(self) -> None:
        self.assertEqual(
            resolve_window(start="2026-01-01", end=None, days=7, today=date(2026, 1, 10)),
            ("2026-01-01", None),
        )

    def test_no_window(self) -> None:
        self.assertEqual(resolve_window(start=None, end=None, days=None), (None, None))


class TestAggregationWithStaticReader(unittest.TestCase):
    def test_totals_and_distinct_days(self) -> None:
        reader = _StaticReader(
            [
                _food("2026-03-01", 600, 40),
                _food("2026-03-01", 900, 50),
                _food("2026-03-02", 600, 50),
            ]
        )
        ref = SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.nutrition)
        bundle = build_input_bundle(ref, reader)
        self.assertEqual(bundle.distinct_day_count, 2)
        self.assertEqual(bundle.derived_totals["calories"], 2100)
        self.assertEqual(bundle.derived_totals["protein"], 140)
        self.assertEqual(bundle.derived_totals["calories_per_day"], 1050)
        self.assertEqual(bundle.derived_totals["food_entry_count"], 3)
        self.assertEqual(bundle.profile, {})

    def test_nutrition_without_food_is_no_data(self) -> None:
        reader = _StaticReader([{"record_type": "supplement_regimen", "id": "r", "date": None}])
        with self.assertRaises(NoDataError):
            build_input_bundle(SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.nutrition), reader)

    def test_correlation_requires_labs(self) -> None:
        reader = _StaticReader([_food("2026-03-01", 500, 20)])
        with self.assertRaises(NoDataError):
            build_input_bundle(SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.correlation), reader)

    def test_lookup_kinds_do_not_read_records(self) -> None:
        reader = _StaticReader([])
        ref = SnapshotRef(
            user_id=USER,
            analysis_kind=AnalysisKind.item_bulk_lookup,
            queries=["apple", " ", "1 cup rice"],
        )
        bundle = build_input_bundle(ref, reader)
        self.assertEqual(reader.calls, [])
        self.assertEqual([r["query"] for r in bundle.windowed_records], ["apple", "1 cup rice"])
        self.assertEqual(bundle.derived_totals, {"query_count": 2.0})
        self.assertEqual(bundle.distinct_day_count, 0)

    def test_single_lookup_keeps_first_query(self) -> None:
        ref = SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.item_lookup, queries=["egg", "toast"])
        bundle = build_input_bundle(ref, _StaticReader([]))
        self.assertEqual([r["query"] for r in bundle.windowed_records], ["egg"])

    def test_lookup_without_query_is_no_data(self) -> None:
        with self.assertRaises(NoDataError):
            build_input_bundle(
                SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.substance_lookup, queries=["  "]),
                _StaticReader([]),
            )


class TestAggregationFromFiles(support.IsolatedDataTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.reader = FileSnapshotReader(data_root=self.data_root)

    def _eat(self, eaten_at: str, calories: float, protein: float = 10) -> None:
        create_food_entry(
            USER,
            eaten_at=eaten_at,
            meal_type="lunch",
            items=[{"name": "bowl", "calories": calories, "protein": protein, "fiber": 5}],
            data_root=self.data_root,
        )

    def test_window_filters_food(self) -> None:
        self._eat("2026-02-27T12:00:00Z", 999)
        self._eat("2026-03-01T08:00:00Z", 400)
        self._eat("2026-03-01T19:00:00Z", 700)
        self._eat("2026-03-03T12:00:00Z", 500)
        ref = SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.nutrition, start="2026-03-01", end="2026-03-05")
        bundle = build_input_bundle(ref, self.reader)
        self.assertEqual(bundle.distinct_day_count, 2)
        self.assertEqual(bundle.derived_totals["calories"], 1600)
        self.assertEqual(bundle.derived_totals["fiber"], 15)
        self.assertEqual(bundle.window_start, "2026-03-01")

    def test_empty_window_is_no_data(self) -> None:
        self._eat("2026-02-27T12:00:00Z", 999)
        ref = SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.nutrition, start="2026-03-01", end="2026-03-05")
        with self.assertRaises(NoDataError):
            build_input_bundle(ref, self.reader)

    def test_nutrition_includes_supplements_and_profile(self) -> None:
        self._eat("2026-03-01T08:00:00Z", 400)
        create_supplement_regimen(USER, name="Vitamin D3", dosage=2000, unit="IU", data_root=self.data_root)
        create_supplement_intake(
            USER,
            supplement_name="Vitamin D3",
            dosage=2000,
            unit="IU",
            taken_at="2026-03-02T08:00:00Z",
            data_root=self.data_root,
        )
        save_profile(USER, UserProfile(age=40, activity_level="lightly_active"), data_root=self.data_root)

        bundle = build_input_bundle(SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.nutrition), self.reader)
        self.assertEqual(bundle.derived_totals["supplement_regimen_count"], 1)
        self.assertEqual(bundle.derived_totals["supplement_intake_count"], 1)
        # Only days with food logged count as covered days.
        self.assertEqual(bundle.distinct_day_count, 1)
        self.assertEqual(bundle.derived_totals["calories_per_day"], 400)
        self.assertEqual(bundle.profile["age"], 40)
        self.assertNotIn("gender", bundle.profile)

    def test_labwork_counts_abnormal_values(self) -> None:
        create_lab_panel(
            USER,
            test_date="2026-03-01",
            values=[
                {"name": "LDL", "value": 160, "unit": "mg/dL", "status": "high"},
                {"name": "HDL", "value": 55, "unit": "mg/dL", "status": "normal"},
            ],
            data_root=self.data_root,
        )
        bundle = build_input_bundle(SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.labwork), self.reader)
        self.assertEqual(bundle.derived_totals["lab_panel_count"], 1)
        self.assertEqual(bundle.derived_totals["lab_value_count"], 2)
        self.assertEqual(bundle.derived_totals["abnormal_value_count"], 1)

    def test_correlation_uses_latest_panel_outside_window(self) -> None:
        self._eat("2026-03-10T12:00:00Z", 500)
        create_lab_panel(USER, test_date="2025-12-01", values=[], data_root=self.data_root)
        latest = create_lab_panel(USER, test_date="2026-01-15", values=[], data_root=self.data_root)
        ref = SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.correlation, start="2026-03-01", end="2026-03-31")
        bundle = build_input_bundle(ref, self.reader)
        labs = [r for r in bundle.windowed_records if r["record_type"] == "lab"]
        self.assertEqual([r["id"] for r in labs], [latest.panel_id])

    def test_correlation_days_ignore_lab_dates(self) -> None:
        self._eat("2026-03-01T08:00:00Z", 900)
        self._eat("2026-03-01T19:00:00Z", 1200)
        create_lab_panel(USER, test_date="2025-11-01", values=[], data_root=self.data_root)
        ref = SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.correlation, start="2026-03-01", end="2026-03-01")
        bundle = build_input_bundle(ref, self.reader)
        self.assertEqual(bundle.distinct_day_count, 1)
        self.assertEqual(bundle.derived_totals["calories"], 2100)
        self.assertEqual(bundle.derived_totals["calories_per_day"], 2100)

    def test_labwork_days_come_from_panels(self) -> None:
        create_lab_panel(USER, test_date="2026-01-15", values=[], data_root=self.data_root)
        create_lab_panel(USER, test_date="2026-03-01", values=[], data_root=self.data_root)
        bundle = build_input_bundle(SnapshotRef(user_id=USER, analysis_kind=AnalysisKind.labwork), self.reader)
        self.assertEqual(bundle.distinct_day_count, 2)


if __name__ == "__main__":
    unittest.main()
