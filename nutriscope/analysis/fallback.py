# -*- coding: utf-8 -*-
"""Analysis — low-confidence fallback results.

Returned in place of a backend answer when the backend or its output fails.
Building one never raises and never performs I/O.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from .models import AnalysisKind, InputBundle, StructuredResult
from .prompts import NUTRIENT_KEYS, SUPPLEMENT_CONTENT_KEYS

FALLBACK_CONFIDENCE = 0.1
UNAVAILABLE_MODEL_ID = "unavailable"

_LOOKUP_INSIGHTS = [
    "Unable to look up nutrition details at this time",
    "All nutrient values are shown as zero until a lookup succeeds",
    "Nutrient content varies with preparation and portion size",
    "Packaged products list exact values on their labels",
    "Try again later or check your connection",
]
_LOOKUP_RECOMMENDATIONS = [
    "Try the lookup again in a few minutes",
    "Use a more specific item description",
    "Check the product label for exact values",
    "Enter nutrient values manually if you know them",
    "Consider consulting with a registered dietitian",
]

# kind -> (insights, recommendations, summary, detailed analysis)
_TEXTS: Dict[AnalysisKind, Tuple[List[str], List[str], str, str]] = {
    AnalysisKind.nutrition: (
        [
            "Unable to analyze comprehensive nutrition data at this time",
            "Please ensure you have logged sufficient food entries",
            "Consider reviewing your supplement regimen with a healthcare provider",
            "Try again later or check your internet connection",
            "Both food and supplement tracking contribute to optimal health",
        ],
        [
            "Log more diverse food entries for better analysis",
            "Review supplement timing with meals for better absorption",
            "Ensure accurate portion sizes and supplement dosages",
            "Try again in a few minutes",
            "Consider consulting with a registered dietitian",
        ],
        "Comprehensive analysis temporarily unavailable due to technical issues.",
        "We were unable to generate a detailed nutritional analysis including both food and "
        "supplement data at this time. For optimal health insights, ensure you have logged "
        "comprehensive food entries and accurate supplement regimens. A registered dietitian can "
        "help you optimize both your diet and supplement strategy based on your individual needs "
        "and health goals.",
    ),
    AnalysisKind.labwork: (
        [
            "Unable to analyze bloodwork data at this time",
            "Lab values appear to be documented",
            "Professional interpretation recommended",
            "Regular monitoring is important",
            "Follow up with healthcare provider",
        ],
        [
            "Consult with a healthcare professional for proper interpretation",
            "Discuss any abnormal values with your doctor",
            "Maintain regular health checkups",
            "Keep a record of all lab results",
            "Follow prescribed treatment plans",
        ],
        "Bloodwork analysis temporarily unavailable due to technical issues.",
        "We were unable to generate a detailed bloodwork analysis at this time. This may be due "
        "to technical issues or service limitations. For proper medical interpretation of your lab "
        "results, consult a qualified healthcare professional who can provide personalized medical "
        "advice based on your complete health history, current symptoms, and individual risk "
        "factors. Never rely solely on automated analysis for medical decisions.",
    ),
    AnalysisKind.correlation: (
        [
            "Unable to analyze correlation data at this time",
            "Both nutrition and bloodwork data appear to be available",
            "Professional guidance recommended for interpretation",
            "Individual responses to diet vary significantly",
            "Long-term patterns are most meaningful",
        ],
        [
            "Continue logging detailed food intake",
            "Maintain regular bloodwork monitoring",
            "Consult with a registered dietitian",
            "Consider working with a healthcare team",
            "Focus on consistent, long-term dietary patterns",
        ],
        "Correlation analysis temporarily unavailable due to technical issues.",
        "We were unable to generate a detailed correlation analysis at this time. This type of "
        "analysis requires interpretation of both nutritional intake patterns and laboratory "
        "biomarkers. For meaningful insights into how your diet may be affecting your health "
        "markers, consider working with a healthcare team including a registered dietitian and "
        "your primary care physician.",
    ),
    AnalysisKind.item_lookup: (
        _LOOKUP_INSIGHTS,
        _LOOKUP_RECOMMENDATIONS,
        "Food lookup temporarily unavailable due to technical issues.",
        "We were unable to estimate nutrition for this item at this time. The values shown are "
        "placeholders and should not be used for tracking.",
    ),
    AnalysisKind.item_bulk_lookup: (
        _LOOKUP_INSIGHTS,
        _LOOKUP_RECOMMENDATIONS,
        "Bulk food lookup temporarily unavailable due to technical issues.",
        "We were unable to estimate nutrition for these items at this time. The values shown are "
        "placeholders and should not be used for tracking.",
    ),
    AnalysisKind.substance_lookup: (
        [
            "Unable to analyze this supplement at this time",
            "Content values are shown as zero until a lookup succeeds",
            "Supplement labels list exact amounts per serving",
            "Formulations differ between brands",
            "Try again later or check your connection",
        ],
        [
            "Try the lookup again in a few minutes",
            "Include the brand and strength in the description",
            "Check the supplement facts label for exact values",
            "Review new supplements with a healthcare provider",
            "Enter the regimen manually if you know the content",
        ],
        "Supplement lookup temporarily unavailable due to technical issues.",
        "We were unable to analyze this supplement at this time. The values shown are placeholders "
        "and should not be used for tracking.",
    ),
}


def _queries(bundle: Optional[InputBundle]) -> List[str]:
    if bundle is None:
        return []
    return [str(r.get("query") or "") for r in bundle.windowed_records if r.get("record_type") == "query"]


def _zero(keys) -> Dict[str, float]:
    return {k: 0.0 for k in keys}


def _food_placeholder(name: str) -> Dict[str, Any]:
    return {
        "name": name,
        "normalizedName": name.lower(),
        "nutrition": _zero(NUTRIENT_KEYS),
        "weightConversion": None,
    }


def _details(kind: AnalysisKind, bundle: Optional[InputBundle]) -> Dict[str, Any]:
    queries = _queries(bundle)
    first = queries[0] if queries else ""
    if kind == AnalysisKind.item_lookup:
        return _food_placeholder(first)
    if kind == AnalysisKind.item_bulk_lookup:
        items = []
        for q in queries:
            item = _food_placeholder(q)
            item["confidence"] = FALLBACK_CONFIDENCE
            items.append(item)
        return {"items": items}
    if kind == AnalysisKind.substance_lookup:
        return {
            "name": first,
            "brand": None,
            "dosage": 1.0,
            "unit": "capsule",
            "form": "capsule",
            "activeIngredients": [],
            "content": _zero(SUPPLEMENT_CONTENT_KEYS),
            "instructions": None,
            "notes": None,
        }
    return {}


def fallback_result(
    kind: AnalysisKind,
    *,
    model_id: Optional[str] = None,
    bundle: Optional[InputBundle] = None,
) -> StructuredResult:
    insights, recommendations, summary, detailed = _TEXTS[kind]
    if kind == AnalysisKind.labwork and bundle is not None:
        panels = int(bundle.derived_totals.get("lab_panel_count") or 0)
        if panels > 1:
            insights = [insights[0], "Multiple test results appear to be documented", *insights[2:]]
            summary = "Multi-test bloodwork analysis temporarily unavailable due to technical issues."
    return StructuredResult(
        insights=list(insights),
        recommendations=list(recommendations),
        confidence=FALLBACK_CONFIDENCE,
        summary=summary,
        detailed_analysis=detailed,
        model_id=model_id or UNAVAILABLE_MODEL_ID,
        details=_details(kind, bundle),
    )
