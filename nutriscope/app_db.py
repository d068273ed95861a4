# -*- coding: utf-8 -*-
"""App database (analyses + second opinions) — SQLite helpers."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


def connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False, timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def init_app_db(db_path: Path) -> None:
    conn = connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS analyses (
                id TEXT PRIMARY KEY,
                user_ref TEXT NOT NULL,
                analysis_kind TEXT NOT NULL,
                input_bundle_json TEXT NOT NULL,
                result_json TEXT NOT NULL,
                model_id TEXT NOT NULL,
                fallback INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            );
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_analyses_user_created ON analyses(user_ref, created_at DESC);"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_analyses_user_kind ON analyses(user_ref, analysis_kind);"
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS analysis_second_opinions (
                analysis_id TEXT NOT NULL,
                model_id TEXT NOT NULL,
                text TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (analysis_id, model_id),
                FOREIGN KEY(analysis_id) REFERENCES analyses(id) ON DELETE CASCADE
            );
            """
        )
        conn.commit()
    finally:
        conn.close()


@contextmanager
def db_conn(db_path: Path) -> Iterator[sqlite3.Connection]:
    conn = connect(db_path)
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()
