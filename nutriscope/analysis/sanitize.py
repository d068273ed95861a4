# -*- coding: utf-8 -*-
"""Analysis — backend output sanitizing and validation.

This module is the trust boundary for backend text. It is pure: any string in,
either a StructuredResult or a ParseError/ValidationError out.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from .errors import ParseError, ValidationError
from .models import (
    INSIGHT_PLACEHOLDER,
    RECOMMENDATION_PLACEHOLDER,
    RESULT_ITEM_COUNT,
    AnalysisKind,
    StructuredResult,
)
from .prompts import NUTRIENT_KEYS, SUPPLEMENT_CONTENT_KEYS

# First fenced block, optionally tagged (```json ... ```).
_FENCE_RE = re.compile(r"```(?:[ \t]*[A-Za-z0-9_+-]+)?[ \t]*\r?\n?(.*?)```", re.DOTALL)
_WHITESPACE_CONTROL_RE = re.compile(r"[\t\n\r\x0b\x0c]")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_NUM_RE = re.compile(r"-?\d+(?:\.\d+)?")

_INSIGHT_KEYS = ["insights", "Insights", "key_insights", "keyInsights"]
_RECOMMENDATION_KEYS = ["recommendations", "Recommendations", "recommendation"]
_CONFIDENCE_KEYS = ["confidence", "Confidence", "confidence_score", "confidenceScore"]
_SUMMARY_KEYS = ["summary", "Summary"]
_DETAILED_KEYS = ["detailedAnalysis", "detailed_analysis", "DetailedAnalysis", "analysis"]
_LIST_ITEM_TEXT_KEYS = ("text", "insight", "recommendation", "title", "message", "content")


def _remove_trailing_commas(text: str) -> str:
    """Remove trailing commas in JSON while preserving string literals."""
    out: list[str] = []
    in_str = False
    escaped = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_str:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == "\"":
                in_str = False
            i += 1
            continue

        if ch == "\"":
            in_str = True
            out.append(ch)
            i += 1
            continue

        if ch == ",":
            j = i + 1
            while j < len(text) and text[j] in " \t\r\n":
                j += 1
            if j < len(text) and text[j] in "}]":
                i += 1
                continue

        out.append(ch)
        i += 1
    return "".join(out)


def _sanitize_json_like(text: str) -> str:
    # Common LLM output issues: curly quotes, trailing commas and non-finite floats.
    cleaned = text
    cleaned = cleaned.replace("“", "\"").replace("”", "\"")
    cleaned = _remove_trailing_commas(cleaned)
    cleaned = re.sub(r"\bNaN\b", "null", cleaned)
    cleaned = re.sub(r"-?\bInfinity\b", "null", cleaned)
    return cleaned


def strip_code_fence(text: str) -> str:
    match = _FENCE_RE.search(text)
    if not match:
        return text
    return match.group(1).strip()


def remove_control_characters(text: str) -> str:
    # Whitespace controls become spaces so words inside strings stay separated.
    return _CONTROL_RE.sub("", _WHITESPACE_CONTROL_RE.sub(" ", text))


def narrow_to_object(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and start < end:
        return text[start : end + 1]
    return text


def extract_json_object(raw: Optional[str]) -> Dict[str, Any]:
    """Steps 1-5: trim, unfence, strip control characters, narrow, parse."""
    cleaned = (raw or "").strip()
    cleaned = strip_code_fence(cleaned)
    cleaned = remove_control_characters(cleaned)
    cleaned = narrow_to_object(cleaned).strip()
    if not cleaned:
        raise ParseError("Backend output is empty")

    last_error: Exception | None = None
    for attempt in (cleaned, _sanitize_json_like(cleaned)):
        try:
            parsed = json.loads(attempt)
        except (ValueError, RecursionError) as exc:
            last_error = exc
            continue
        if isinstance(parsed, dict):
            return parsed
        last_error = ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    raise ParseError(f"Failed to parse backend JSON: {last_error}")


# ---------- coercion helpers ----------


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            f = float(value)
        except OverflowError:
            return None
        return f if f == f and f not in (float("inf"), float("-inf")) else None
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        m = _NUM_RE.search(s.replace(",", ""))
        if not m:
            return None
        try:
            f = float(m.group(0))
        except ValueError:
            return None
        return f if f not in (float("inf"), float("-inf")) else None
    return None


def _number(value: Any, default: float = 0.0) -> float:
    f = _coerce_float(value)
    return default if f is None else f


def _non_negative(value: Any) -> float:
    return max(0.0, _number(value))


def coerce_confidence(value: Any) -> float:
    """Numeric parse (0 on failure), 0-100 scale folded to 0-1, clamped."""
    f = _number(value)
    if f > 1:
        f = f / 100.0
    return round(max(0.0, min(1.0, f)), 4)


def _item_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        for key in _LIST_ITEM_TEXT_KEYS:
            v = value.get(key)
            if isinstance(v, str) and v.strip():
                return v.strip()
        return json.dumps(value, ensure_ascii=False)
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        s = value.strip()
        return [s] if s else []
    if isinstance(value, list):
        out: List[str] = []
        for x in value:
            s = _item_text(x)
            if s:
                out.append(s)
        return out
    s = _item_text(value)
    return [s] if s else []


def fit_to_five(items: Sequence[str], placeholder: str) -> List[str]:
    out = [s for s in items if s][:RESULT_ITEM_COUNT]
    while len(out) < RESULT_ITEM_COUNT:
        out.append(placeholder)
    return out


def _first_present(obj: Dict[str, Any], keys: List[str]) -> Any:
    for k in keys:
        if k in obj and obj[k] is not None:
            return obj[k]
    return None


def _require(obj: Dict[str, Any], keys: List[str], field: str) -> Any:
    value = _first_present(obj, keys)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Backend output is missing required field '{field}'")
    return value


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list):
        return "\n\n".join(_as_str_list(value))
    return _item_text(value)


# ---------- kind-specific details ----------


def _nutrients(raw: Any, keys: Sequence[str]) -> Dict[str, float]:
    raw = raw if isinstance(raw, dict) else {}
    return {k: round(_non_negative(raw.get(k)), 4) for k in keys}


def _weight_conversion(raw: Any) -> Optional[Dict[str, float]]:
    if not isinstance(raw, dict):
        return None
    out = {k: _non_negative(raw.get(k)) for k in ("grams", "ounces", "pounds")}
    return out if any(out.values()) else None


def _food_details(raw: Dict[str, Any], default_name: str) -> Dict[str, Any]:
    name = _text(raw.get("name")) or default_name
    return {
        "name": name,
        "normalizedName": _text(raw.get("normalizedName") or raw.get("normalized_name")) or name.lower(),
        "nutrition": _nutrients(raw.get("nutrition"), NUTRIENT_KEYS),
        "weightConversion": _weight_conversion(raw.get("weightConversion") or raw.get("weight_conversion")),
    }


def _bulk_details(parsed: Dict[str, Any], queries: Sequence[str]) -> Dict[str, Any]:
    items = parsed.get("items")
    if not isinstance(items, list):
        raise ValidationError("Backend output is missing required field 'items'")
    if queries and len(items) != len(queries):
        raise ValidationError(f"Expected {len(queries)} items, got {len(items)}")
    out = []
    for index, raw in enumerate(items):
        raw = raw if isinstance(raw, dict) else {}
        default_name = queries[index] if index < len(queries) else f"item {index + 1}"
        detail = _food_details(raw, default_name)
        detail["confidence"] = coerce_confidence(raw.get("confidence"))
        out.append(detail)
    return {"items": out}


def _substance_details(parsed: Dict[str, Any], default_name: str) -> Dict[str, Any]:
    return {
        "name": _text(parsed.get("name")) or default_name,
        "brand": _text(parsed.get("brand")) or None,
        "dosage": _non_negative(parsed.get("dosage")),
        "unit": _text(parsed.get("unit")),
        "form": _text(parsed.get("form")) or "other",
        "activeIngredients": _as_str_list(parsed.get("activeIngredients") or parsed.get("active_ingredients")),
        "content": _nutrients(parsed.get("content"), SUPPLEMENT_CONTENT_KEYS),
        "instructions": _text(parsed.get("instructions")) or None,
        "notes": _text(parsed.get("notes")) or None,
    }


def _details(kind: AnalysisKind, parsed: Dict[str, Any], queries: Sequence[str]) -> Dict[str, Any]:
    first = queries[0] if queries else ""
    if kind == AnalysisKind.item_lookup:
        return _food_details(parsed, first)
    if kind == AnalysisKind.item_bulk_lookup:
        return _bulk_details(parsed, queries)
    if kind == AnalysisKind.substance_lookup:
        return _substance_details(parsed, first)
    return {}


def coerce_result(
    parsed: Dict[str, Any],
    *,
    model_id: str,
    kind: AnalysisKind,
    queries: Sequence[str] = (),
) -> StructuredResult:
    """Step 6-7: coerce every field to its contract; raise if a required field is absent."""
    insights = _as_str_list(_require(parsed, _INSIGHT_KEYS, "insights"))
    recommendations = _as_str_list(_require(parsed, _RECOMMENDATION_KEYS, "recommendations"))
    confidence = coerce_confidence(_require(parsed, _CONFIDENCE_KEYS, "confidence"))
    summary = _text(_require(parsed, _SUMMARY_KEYS, "summary"))
    detailed = _text(_require(parsed, _DETAILED_KEYS, "detailedAnalysis"))
    if not summary:
        raise ValidationError("Backend output is missing required field 'summary'")
    if not detailed:
        raise ValidationError("Backend output is missing required field 'detailedAnalysis'")

    return StructuredResult(
        insights=fit_to_five(insights, INSIGHT_PLACEHOLDER),
        recommendations=fit_to_five(recommendations, RECOMMENDATION_PLACEHOLDER),
        confidence=confidence,
        summary=summary,
        detailed_analysis=detailed,
        model_id=model_id,
        details=_details(kind, parsed, queries),
    )


def validate_result(
    raw: Optional[str],
    *,
    model_id: str,
    kind: AnalysisKind,
    queries: Sequence[str] = (),
) -> StructuredResult:
    parsed = extract_json_object(raw)
    return coerce_result(parsed, model_id=model_id, kind=kind, queries=queries)
