# -*- coding: utf-8 -*-
"""Analysis — DB storage helpers."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
from uuid import uuid4

from ..app_db import db_conn, init_app_db
from ..config import settings
from .errors import RecordNotFoundError
from .models import AnalysisKind, AnalysisRecord, InputBundle, SecondOpinion, StructuredResult

_initialized: Set[str] = set()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _db_path() -> Path:
    path = settings.app_db_path
    key = str(path)
    if key not in _initialized:
        init_app_db(path)
        _initialized.add(key)
    return path


def _second_opinions(conn: sqlite3.Connection, analysis_id: str) -> List[SecondOpinion]:
    rows = conn.execute(
        "SELECT model_id, text, created_at FROM analysis_second_opinions WHERE analysis_id = ? ORDER BY created_at ASC",
        (analysis_id,),
    ).fetchall()
    return [SecondOpinion(model_id=r["model_id"], text=r["text"], created_at=r["created_at"]) for r in rows]


def _row_to_record(conn: sqlite3.Connection, row: sqlite3.Row) -> AnalysisRecord:
    return AnalysisRecord(
        id=row["id"],
        user_ref=row["user_ref"],
        analysis_kind=AnalysisKind(row["analysis_kind"]),
        created_at=row["created_at"],
        input_bundle=InputBundle.model_validate(json.loads(row["input_bundle_json"])),
        result=StructuredResult.model_validate(json.loads(row["result_json"])),
        fallback=bool(row["fallback"]),
        second_opinions=_second_opinions(conn, row["id"]),
    )


def create_analysis(
    *,
    user_ref: str,
    bundle: InputBundle,
    result: StructuredResult,
    fallback: bool = False,
) -> AnalysisRecord:
    record = AnalysisRecord(
        id=str(uuid4()),
        user_ref=user_ref,
        analysis_kind=bundle.analysis_kind,
        created_at=_utc_now(),
        input_bundle=bundle,
        result=result,
        fallback=fallback,
    )
    with db_conn(_db_path()) as conn:
        conn.execute(
            """
            INSERT INTO analyses (id, user_ref, analysis_kind, input_bundle_json, result_json, model_id, fallback, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.user_ref,
                record.analysis_kind.value,
                bundle.model_dump_json(),
                result.model_dump_json(),
                result.model_id,
                1 if fallback else 0,
                record.created_at,
            ),
        )
    return record


def get_analysis(analysis_id: str, *, user_ref: Optional[str] = None) -> Optional[AnalysisRecord]:
    with db_conn(_db_path()) as conn:
        sql = "SELECT * FROM analyses WHERE id = ?"
        params: list[Any] = [analysis_id]
        if user_ref is not None:
            sql += " AND user_ref = ?"
            params.append(user_ref)
        row = conn.execute(sql, tuple(params)).fetchone()
        return _row_to_record(conn, row) if row else None


def list_analyses(
    *,
    user_ref: str,
    analysis_kind: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[AnalysisRecord]:
    with db_conn(_db_path()) as conn:
        sql = "SELECT * FROM analyses WHERE user_ref = ?"
        params: list[Any] = [user_ref]
        if analysis_kind:
            sql += " AND analysis_kind = ?"
            params.append(analysis_kind)
        sql += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
        params.extend([int(limit), int(offset)])
        rows = conn.execute(sql, tuple(params)).fetchall()
        return [_row_to_record(conn, r) for r in rows]


def delete_analysis(analysis_id: str, *, user_ref: str) -> bool:
    with db_conn(_db_path()) as conn:
        cur = conn.execute(
            "DELETE FROM analyses WHERE id = ? AND user_ref = ?",
            (analysis_id, user_ref),
        )
        return cur.rowcount > 0


def get_second_opinion(analysis_id: str, model_id: str) -> Optional[SecondOpinion]:
    with db_conn(_db_path()) as conn:
        row = conn.execute(
            "SELECT model_id, text, created_at FROM analysis_second_opinions WHERE analysis_id = ? AND model_id = ?",
            (analysis_id, model_id),
        ).fetchone()
        if not row:
            return None
        return SecondOpinion(model_id=row["model_id"], text=row["text"], created_at=row["created_at"])


def attach_second_opinion(analysis_id: str, *, model_id: str, text: str) -> SecondOpinion:
    """Store a second opinion once per (analysis, model); the first writer wins."""
    try:
        with db_conn(_db_path()) as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO analysis_second_opinions (analysis_id, model_id, text, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (analysis_id, model_id, text, _utc_now()),
            )
    except sqlite3.IntegrityError as exc:
        raise RecordNotFoundError(f"Analysis not found: {analysis_id}") from exc
    stored = get_second_opinion(analysis_id, model_id)
    if stored is None:
        raise RecordNotFoundError(f"Analysis not found: {analysis_id}")
    return stored


def count_analyses(*, user_ref: str, analysis_kind: Optional[str] = None) -> int:
    with db_conn(_db_path()) as conn:
        sql = "SELECT COUNT(1) AS n FROM analyses WHERE user_ref = ?"
        params: list[Any] = [user_ref]
        if analysis_kind:
            sql += " AND analysis_kind = ?"
            params.append(analysis_kind)
        row = conn.execute(sql, tuple(params)).fetchone()
        return int(row["n"]) if row else 0


def result_summary(record: AnalysisRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "analysis_kind": record.analysis_kind,
        "created_at": record.created_at,
        "summary": record.result.summary,
        "confidence": record.result.confidence,
        "model_id": record.result.model_id,
        "fallback": record.fallback,
        "second_opinion_models": [o.model_id for o in record.second_opinions],
    }
