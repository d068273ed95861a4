# -*- coding: utf-8 -*-
"""Domain records — JSON file storage + snapshot reader for the analysis pipeline."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar
from uuid import uuid4

from pydantic import BaseModel

from ..config import settings
from .models import (
    FOOD_METRICS,
    FoodEntry,
    FoodItem,
    LabPanel,
    LabValue,
    SupplementIntake,
    SupplementRegimen,
    UserProfile,
)

log = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)

FOOD_DIR = "food"
LABS_DIR = "labs"
REGIMENS_DIR = "supplements"
INTAKES_DIR = "supplement_intakes"


def _safe_key(value: str) -> str:
    cleaned = re.sub(r"[^\w.\-@]+", "_", value.strip())
    if cleaned in {"", ".", ".."}:
        cleaned = "unknown"
    return cleaned[:200]


def _user_root(user_id: str, data_root: Path | None = None) -> Path:
    return (data_root or settings.data_root) / "users" / _safe_key(user_id)


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _iso_now() -> str:
    return datetime.utcnow().isoformat() + "Z"


def _date_prefix(iso8601: str | None) -> str:
    # Most ISO8601 strings start with YYYY-MM-DD; keep it robust without strict parsing.
    return (iso8601 or "")[:10]


def _write_model(directory: Path, key: str, model: BaseModel) -> None:
    _ensure_dir(directory)
    fp = directory / f"{_safe_key(key)}.json"
    fp.write_text(model.model_dump_json(indent=2), encoding="utf-8")


def _iter_models(directory: Path, model_cls: Type[_M]) -> List[_M]:
    if not directory.exists():
        return []
    out: List[_M] = []
    for fp in sorted(directory.glob("*.json")):
        try:
            out.append(model_cls.model_validate(json.loads(fp.read_text(encoding="utf-8"))))
        except Exception as exc:
            log.warning("skipping unreadable record %s: %s", fp, exc)
            continue
    return out


def _in_window(day: str, start: Optional[str], end: Optional[str]) -> bool:
    start_date = start or "0000-01-01"
    end_date = end or "9999-12-31"
    return start_date <= day <= end_date


# ---------- Writers ----------


def save_profile(user_id: str, profile: UserProfile, data_root: Path | None = None) -> None:
    root = _user_root(user_id, data_root)
    _ensure_dir(root)
    (root / "profile.json").write_text(profile.model_dump_json(indent=2), encoding="utf-8")


def create_food_entry(
    user_id: str,
    *,
    eaten_at: str,
    meal_type: str,
    items: List[Dict[str, Any]],
    notes: Optional[str] = None,
    data_root: Path | None = None,
) -> FoodEntry:
    entry = FoodEntry(
        entry_id=str(uuid4()),
        eaten_at=eaten_at,
        meal_type=meal_type,
        items=[FoodItem.model_validate(i) for i in items],
        notes=notes,
        created_at=_iso_now(),
    )
    _write_model(_user_root(user_id, data_root) / FOOD_DIR, entry.entry_id, entry)
    return entry


def create_lab_panel(
    user_id: str,
    *,
    test_date: str,
    values: List[Dict[str, Any]],
    lab_name: Optional[str] = None,
    doctor_name: Optional[str] = None,
    notes: Optional[str] = None,
    data_root: Path | None = None,
) -> LabPanel:
    panel = LabPanel(
        panel_id=str(uuid4()),
        test_date=test_date,
        lab_name=lab_name,
        doctor_name=doctor_name,
        values=[LabValue.model_validate(v) for v in values],
        notes=notes,
        created_at=_iso_now(),
    )
    _write_model(_user_root(user_id, data_root) / LABS_DIR, panel.panel_id, panel)
    return panel


def create_supplement_regimen(
    user_id: str,
    *,
    name: str,
    dosage: float,
    unit: str,
    frequency: str = "daily",
    time_of_day: Optional[List[str]] = None,
    brand: Optional[str] = None,
    instructions: Optional[str] = None,
    notes: Optional[str] = None,
    data_root: Path | None = None,
) -> SupplementRegimen:
    regimen = SupplementRegimen(
        regimen_id=str(uuid4()),
        name=name,
        brand=brand,
        dosage=dosage,
        unit=unit,
        frequency=frequency,
        time_of_day=time_of_day or [],
        instructions=instructions,
        notes=notes,
        created_at=_iso_now(),
    )
    _write_model(_user_root(user_id, data_root) / REGIMENS_DIR, regimen.regimen_id, regimen)
    return regimen


def create_supplement_intake(
    user_id: str,
    *,
    supplement_name: str,
    dosage: float,
    unit: str,
    taken_at: str,
    time_of_day: Optional[str] = None,
    data_root: Path | None = None,
) -> SupplementIntake:
    intake = SupplementIntake(
        intake_id=str(uuid4()),
        supplement_name=supplement_name,
        dosage=dosage,
        unit=unit,
        taken_at=taken_at,
        time_of_day=time_of_day,
    )
    _write_model(_user_root(user_id, data_root) / INTAKES_DIR, intake.intake_id, intake)
    return intake


# ---------- Readers ----------


def get_profile(user_id: str, data_root: Path | None = None) -> Optional[UserProfile]:
    fp = _user_root(user_id, data_root) / "profile.json"
    if not fp.exists():
        return None
    try:
        return UserProfile.model_validate(json.loads(fp.read_text(encoding="utf-8")))
    except Exception as exc:
        log.warning("unreadable profile for user %s: %s", user_id, exc)
        return None


def get_food_entries(
    user_id: str,
    *,
    start: Optional[str] = None,
    end: Optional[str] = None,
    data_root: Path | None = None,
) -> List[FoodEntry]:
    entries = _iter_models(_user_root(user_id, data_root) / FOOD_DIR, FoodEntry)
    entries = [e for e in entries if _in_window(_date_prefix(e.eaten_at), start, end)]
    return sorted(entries, key=lambda e: e.eaten_at)


def get_lab_panels(
    user_id: str,
    *,
    start: Optional[str] = None,
    end: Optional[str] = None,
    panel_ids: Optional[Iterable[str]] = None,
    data_root: Path | None = None,
) -> List[LabPanel]:
    panels = _iter_models(_user_root(user_id, data_root) / LABS_DIR, LabPanel)
    if panel_ids:
        wanted = set(panel_ids)
        panels = [p for p in panels if p.panel_id in wanted]
    else:
        panels = [p for p in panels if _in_window(_date_prefix(p.test_date), start, end)]
    return sorted(panels, key=lambda p: (p.test_date, p.created_at))


def get_supplement_regimens(
    user_id: str,
    *,
    active_only: bool = True,
    data_root: Path | None = None,
) -> List[SupplementRegimen]:
    regimens = _iter_models(_user_root(user_id, data_root) / REGIMENS_DIR, SupplementRegimen)
    if active_only:
        regimens = [r for r in regimens if r.active]
    return sorted(regimens, key=lambda r: r.created_at)


def get_supplement_intakes(
    user_id: str,
    *,
    start: Optional[str] = None,
    end: Optional[str] = None,
    data_root: Path | None = None,
) -> List[SupplementIntake]:
    intakes = _iter_models(_user_root(user_id, data_root) / INTAKES_DIR, SupplementIntake)
    intakes = [i for i in intakes if _in_window(_date_prefix(i.taken_at), start, end)]
    return sorted(intakes, key=lambda i: i.taken_at)


# ---------- Snapshot records (plain dicts handed to the aggregator) ----------


def food_entry_record(entry: FoodEntry) -> Dict[str, Any]:
    items = [i.model_dump(exclude_none=True) for i in entry.items]
    totals = {m: round(sum(float(i.get(m) or 0.0) for i in items), 2) for m in FOOD_METRICS}
    return {
        "record_type": "food",
        "id": entry.entry_id,
        "date": _date_prefix(entry.eaten_at),
        "eaten_at": entry.eaten_at,
        "meal_type": entry.meal_type.value,
        "items": items,
        "totals": totals,
    }


def lab_panel_record(panel: LabPanel) -> Dict[str, Any]:
    return {
        "record_type": "lab",
        "id": panel.panel_id,
        "date": _date_prefix(panel.test_date),
        "lab_name": panel.lab_name,
        "doctor_name": panel.doctor_name,
        "values": [v.model_dump(mode="json", exclude_none=True) for v in panel.values],
    }


def supplement_regimen_record(regimen: SupplementRegimen) -> Dict[str, Any]:
    return {
        "record_type": "supplement_regimen",
        "id": regimen.regimen_id,
        "date": None,
        "name": regimen.name,
        "brand": regimen.brand,
        "dosage": regimen.dosage,
        "unit": regimen.unit,
        "frequency": regimen.frequency,
        "time_of_day": list(regimen.time_of_day),
        "instructions": regimen.instructions,
        "notes": regimen.notes,
    }


def supplement_intake_record(intake: SupplementIntake) -> Dict[str, Any]:
    return {
        "record_type": "supplement_intake",
        "id": intake.intake_id,
        "date": _date_prefix(intake.taken_at),
        "supplement_name": intake.supplement_name,
        "dosage": intake.dosage,
        "unit": intake.unit,
        "time_of_day": intake.time_of_day,
    }


class FileSnapshotReader:
    """Default snapshot reader backed by the JSON file storage above."""

    def __init__(self, data_root: Path | None = None) -> None:
        self.data_root = data_root

    def fetch_profile(self, user_id: str) -> Optional[UserProfile]:
        return get_profile(user_id, data_root=self.data_root)

    def fetch_records_for_analysis(
        self,
        user_id: str,
        kind: str,
        *,
        start: Optional[str] = None,
        end: Optional[str] = None,
        record_ids: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        if kind == "nutrition":
            records.extend(
                supplement_regimen_record(r)
                for r in get_supplement_regimens(user_id, data_root=self.data_root)
            )
            records.extend(
                supplement_intake_record(i)
                for i in get_supplement_intakes(user_id, start=start, end=end, data_root=self.data_root)
            )
        if kind in {"nutrition", "correlation"}:
            records.extend(
                food_entry_record(e)
                for e in get_food_entries(user_id, start=start, end=end, data_root=self.data_root)
            )
        if kind in {"labwork", "correlation"}:
            if kind == "correlation" and not record_ids:
                # Correlate against the most recent panel, whenever it was taken.
                panels = get_lab_panels(user_id, data_root=self.data_root)[-1:]
            else:
                panels = get_lab_panels(
                    user_id, start=start, end=end, panel_ids=record_ids, data_root=self.data_root
                )
            records.extend(lab_panel_record(p) for p in panels)
        return records
