# -*- coding: utf-8 -*-
"""Shared fixtures: every test case gets its own data root and app DB."""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path
from typing import Any, Dict
from unittest import mock

# Point the module-level settings at a scratch location before anything imports it.
_SESSION_ROOT = Path(tempfile.mkdtemp(prefix="nutriscope-test-"))
os.environ.setdefault("NUTRISCOPE_DATA_ROOT", str(_SESSION_ROOT / "data"))
os.environ.setdefault("NUTRISCOPE_DB_PATH", str(_SESSION_ROOT / "data" / "nutriscope.db"))

from nutriscope.config import settings  # noqa: E402

OPENAI_TEST_KEY = "sk-test-0123456789abcdef"
QWEN_TEST_KEY = "sk-qwen-0123456789abcdef"


class IsolatedDataTestCase(unittest.TestCase):
    def setUp(self) -> None:
        super().setUp()
        self._tmp = Path(tempfile.mkdtemp(prefix="nutriscope-case-"))
        self.data_root = self._tmp / "data"
        overrides = {
            "data_root": self.data_root,
            "app_db_path": self.data_root / "nutriscope.db",
            "default_backend": "openai/gpt-4o-mini",
            "second_opinion_backend": "qwen/qwen-plus",
            "available_models": ["openai/gpt-4o-mini", "openai/gpt-4o", "qwen/qwen-plus"],
            "openai_api_key": OPENAI_TEST_KEY,
            "openai_base_url": "https://api.openai.test/v1",
            "qwen_api_key": QWEN_TEST_KEY,
            "qwen_base_url": "https://dashscope.test/compatible-mode/v1",
            "opencode_base_url": "http://opencode.test:4096",
        }
        for name, value in overrides.items():
            patcher = mock.patch.object(settings, name, value)
            patcher.start()
            self.addCleanup(patcher.stop)
        self.addCleanup(shutil.rmtree, self._tmp, ignore_errors=True)


def result_payload(confidence: Any = 75, **overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "insights": [f"Insight {i}" for i in range(1, 6)],
        "recommendations": [f"Recommendation {i}" for i in range(1, 6)],
        "confidence": confidence,
        "summary": "Protein intake is solid; fiber is low.",
        "detailedAnalysis": "Paragraph one.\n\nParagraph two.",
    }
    payload.update(overrides)
    return payload


def result_json(confidence: Any = 75, **overrides: Any) -> str:
    return json.dumps(result_payload(confidence, **overrides))
