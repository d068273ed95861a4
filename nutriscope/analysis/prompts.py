# -*- coding: utf-8 -*-
"""Analysis — prompt composition.

Every template restates the figures already computed by the aggregator (the
backend is told to use them, never to recompute them), spells out the output
schema field-for-field, and gives a confidence band derived from the number
of distinct days covered. The band is advisory: the validator decides the
final confidence.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from ..config import settings
from .backends import BackendChoice
from .models import AnalysisKind, InputBundle, StructuredResult

SYSTEM_PROMPT = (
    "You are a qualified nutritionist and health analyst. "
    "Provide evidence-based, actionable insights about nutrition and health data. "
    "Always include disclaimers about consulting healthcare professionals for medical advice."
)

RECONCILIATION_SYSTEM_PROMPT = (
    "You are a senior clinical nutrition reviewer comparing two independent analyses of the same data. "
    "Be precise about where they agree and where they differ. Do not invent data that is not in either analysis."
)

MAX_TOKENS: Dict[AnalysisKind, int] = {
    AnalysisKind.nutrition: 2500,
    AnalysisKind.labwork: 2500,
    AnalysisKind.correlation: 2500,
    AnalysisKind.item_lookup: 1500,
    AnalysisKind.item_bulk_lookup: 3000,
    AnalysisKind.substance_lookup: 1000,
}
RECONCILIATION_MAX_TOKENS = 2000

# Wire keys the backend reports nutrient figures under (per the item lookup schema).
NUTRIENT_KEYS: Tuple[str, ...] = (
    "calories", "protein", "carbs", "fat", "fiber", "sugar",
    "sodium", "potassium", "calcium", "magnesium", "phosphorus", "iron", "zinc", "selenium",
    "vitaminA", "vitaminC", "vitaminD", "vitaminE", "vitaminK",
    "thiamin", "riboflavin", "niacin", "vitaminB6", "folate", "vitaminB12", "biotin", "pantothenicAcid",
    "cholesterol", "saturatedFat", "monounsaturatedFat", "polyunsaturatedFat", "transFat",
    "omega3", "omega6", "creatine",
)
SUPPLEMENT_CONTENT_KEYS: Tuple[str, ...] = (
    "vitaminA", "vitaminC", "vitaminD", "vitaminE", "vitaminK",
    "thiamin", "riboflavin", "niacin", "vitaminB6", "folate", "vitaminB12", "biotin", "pantothenicAcid",
    "calcium", "magnesium", "iron", "zinc", "selenium", "potassium", "phosphorus", "sodium",
    "omega3", "omega6", "creatine", "coq10", "probioticCFU",
)

_METRIC_UNITS = {
    "calories": "kcal",
    "protein": "g",
    "carbs": "g",
    "fat": "g",
    "fiber": "g",
    "sugar": "g",
    "sodium": "mg",
    "potassium": "mg",
    "saturated_fat": "g",
    "vitamin_c": "mg",
    "iron": "mg",
}

_ACTIVITY_MULTIPLIERS = (
    "sedentary (1.15), lightly_active (1.3), moderately_active (1.45), "
    "very_active (1.6), extra_active (1.75)"
)

_KG_TO_LBS = 2.20462


@dataclass(frozen=True)
class ComposedRequest:
    system: str
    prompt: str
    backend: BackendChoice
    max_tokens: int
    temperature: float
    analysis_kind: AnalysisKind


def confidence_band(distinct_day_count: int) -> Tuple[str, int, int]:
    if distinct_day_count <= 1:
        return "low", 30, 50
    if distinct_day_count <= 7:
        return "medium", 60, 80
    return "high", 80, 95


def _num(value: Any) -> str:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return str(value)
    if f.is_integer():
        return str(int(f))
    return f"{f:.1f}"


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, sort_keys=False)


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


def _result_schema(extra: str = "") -> str:
    return (
        "{\n"
        f"{extra}"
        '  "insights": ["string", "string", "string", "string", "string"],\n'
        '  "recommendations": ["string", "string", "string", "string", "string"],\n'
        '  "confidence": number,\n'
        '  "summary": "string",\n'
        '  "detailedAnalysis": "string"\n'
        "}\n"
    )


def _schema_rules() -> str:
    return (
        "Output rules (STRICT):\n"
        "- Return ONLY valid JSON, no markdown formatting or code blocks.\n"
        "- Output MUST start with '{' and end with '}'. Use double quotes and no trailing commas.\n"
        "- insights: exactly 5 short strings. recommendations: exactly 5 short, specific, actionable strings.\n"
        "- confidence: a number between 0 and 100 (percentage).\n"
        "- summary: 2-3 sentences. detailedAnalysis: 3-4 paragraphs of narrative.\n"
        "- If the data does not support 5 distinct points, say so rather than inventing specifics.\n"
    )


def _calibration(bundle: InputBundle) -> str:
    band, low, high = confidence_band(bundle.distinct_day_count)
    days = bundle.distinct_day_count
    return (
        "Confidence calibration:\n"
        f"- The data covers {_plural(days, 'distinct day')}; this is {band} coverage.\n"
        f"- Suggested confidence range: {low}-{high}. "
        "Use 30-50 for a single day, 60-80 for 2-7 days, 80-95 for 8 or more days.\n"
        "- Lower the confidence further if records are sparse or inconsistent.\n"
    )


def _figures_block(bundle: InputBundle) -> str:
    days = bundle.distinct_day_count
    lines: List[str] = [f"CALCULATED FIGURES ({_plural(days, 'day')}; use these verbatim, do not recalculate):"]
    totals = bundle.derived_totals
    for metric, unit in _METRIC_UNITS.items():
        if metric not in totals:
            continue
        label = metric.replace("_", " ").title()
        line = f"- Total {label}: {_num(totals[metric])} {unit}"
        per_day = totals.get(f"{metric}_per_day")
        if per_day is not None:
            line += f" ({_num(per_day)} {unit}/day average)"
        lines.append(line)
    shown = set(_METRIC_UNITS) | {f"{m}_per_day" for m in _METRIC_UNITS}
    for key in sorted(totals):
        if key in shown:
            continue
        lines.append(f"- {key.replace('_', ' ')}: {_num(totals[key])}")
    return "\n".join(lines) + "\n"


def _window_line(bundle: InputBundle) -> str:
    dates = sorted({r["date"] for r in bundle.windowed_records if r.get("date")})
    if not dates:
        return "- Date range: no dated records\n"
    if len(dates) == 1:
        return f"- Date range: single day ({dates[0]})\n"
    return f"- Date range: {dates[0]} to {dates[-1]}\n"


def _profile_block(profile: Dict[str, Any]) -> str:
    out = f"USER PROFILE:\n{_dump(profile or {})}\n"
    activity = profile.get("activity_level") if profile else None
    if activity:
        out += (
            "\nACTIVITY LEVEL CONTEXT:\n"
            f"- User's activity level: {activity}\n"
            "- Calorie needs should be based on BMR x activity multiplier.\n"
            f"- Activity multipliers: {_ACTIVITY_MULTIPLIERS}\n"
        )
    weight = profile.get("weight_kg") if profile else None
    goal = profile.get("weight_goal_lbs") if profile else None
    weeks = profile.get("weight_goal_timeframe_weeks") if profile else None
    if weight and goal and weeks:
        current_lbs = float(weight) * _KG_TO_LBS
        change = current_lbs - float(goal)
        out += (
            "\nWEIGHT GOAL CONTEXT:\n"
            f"- Current weight: {current_lbs:.1f} lbs\n"
            f"- Target weight: {_num(goal)} lbs\n"
            f"- Timeline: {_num(weeks)} weeks\n"
            f"- Weight change needed: {change:.1f} lbs ({change / float(weeks):.1f} lbs/week)\n"
            "- Cap recommended weight loss at 2 lbs/week; 1-2 lbs/week is a 500-1000 kcal/day deficit.\n"
        )
    return out


def _records_of(bundle: InputBundle, record_type: str) -> List[Dict[str, Any]]:
    return [r for r in bundle.windowed_records if r.get("record_type") == record_type]


def _food_log_block(bundle: InputBundle) -> str:
    food = _records_of(bundle, "food")
    lines = [f"FOOD LOGS ({_plural(len(food), 'entry')}):"]
    for entry in food:
        t = entry.get("totals") or {}
        names = ", ".join(str(i.get("name")) for i in entry.get("items") or [])
        figures = ", ".join(
            f"{_num(t[metric])} {unit} {metric.replace('_', ' ')}"
            for metric, unit in _METRIC_UNITS.items()
            if metric in t
        )
        lines.append(
            f"- {entry.get('date')} {entry.get('meal_type')}: {figures or 'no figures'}"
            + (f" [{names}]" if names else "")
        )
    return "\n".join(lines) + "\n"


def _supplement_block(bundle: InputBundle) -> str:
    regimens = _records_of(bundle, "supplement_regimen")
    intakes = _records_of(bundle, "supplement_intake")
    strip = {"record_type", "id", "date"}
    return (
        f"SUPPLEMENT REGIMENS ({len(regimens)} active):\n"
        f"{_dump([{k: v for k, v in r.items() if k not in strip} for r in regimens])}\n"
        f"SUPPLEMENT INTAKES ({len(intakes)} recorded):\n"
        f"{_dump([{k: v for k, v in r.items() if k != 'record_type'} for r in intakes])}\n"
    )


def _lab_block(bundle: InputBundle) -> str:
    labs = _records_of(bundle, "lab")
    return f"LAB RESULTS ({_plural(len(labs), 'panel')}):\n{_dump(labs)}\n"


def _nutrition_prompt(bundle: InputBundle) -> str:
    days = bundle.distinct_day_count
    return (
        "Analyze the following nutrition data including both food intake and supplement regimens.\n\n"
        f"{_figures_block(bundle)}\n"
        f"{_food_log_block(bundle)}"
        f"{_window_line(bundle)}\n"
        f"{_profile_block(bundle.profile)}\n"
        f"{_supplement_block(bundle)}\n"
        "Focus areas:\n"
        "- Macronutrient balance relative to the user's goals and activity level.\n"
        "- Supplement regimen appropriateness given total intake (avoid double-counting food + supplements).\n"
        "- Nutrient gaps or redundancies, supplement timing and food interactions.\n"
        "- Fiber, sugar, sodium and potassium relative to common guidance.\n"
        f"- {'Immediate, single-day improvements' if days <= 1 else 'Trends and patterns across days'}.\n"
        "- Personalize to the profile's goals, allergies and dietary restrictions.\n\n"
        f"{_calibration(bundle)}\n"
        "Output JSON schema (STRICT):\n"
        f"{_result_schema()}\n"
        f"{_schema_rules()}"
        "- Always reference the CALCULATED FIGURES above, not individual food items.\n"
    )


def _labwork_prompt(bundle: InputBundle) -> str:
    labs = _records_of(bundle, "lab")
    multiple = len(labs) > 1
    if multiple:
        context = (
            "TREND ANALYSIS CONTEXT:\n"
            "- Multiple panels are available; focus on trends and the direction of key biomarkers.\n"
            "- Assess whether values moved toward or away from their reference ranges between panels.\n"
        )
    else:
        context = (
            "SINGLE TEST CONTEXT:\n"
            "- Assess current status relative to reference ranges and recommend follow-up timing.\n"
        )
    return (
        f"Analyze the following bloodwork {'across multiple panels' if multiple else 'from a single panel'}.\n\n"
        f"{_figures_block(bundle)}\n"
        f"{_lab_block(bundle)}"
        f"{_window_line(bundle)}\n"
        f"{_profile_block(bundle.profile)}\n"
        f"{context}\n"
        "Focus areas:\n"
        "- Interpret each out-of-range value with its reference range.\n"
        "- Consider confounders (age, sex, weight) and compounding risk factors.\n"
        "- Always recommend consulting a healthcare professional for medical decisions.\n\n"
        f"{_calibration(bundle)}\n"
        "Output JSON schema (STRICT):\n"
        f"{_result_schema()}\n"
        f"{_schema_rules()}"
    )


def _correlation_prompt(bundle: InputBundle) -> str:
    return (
        "Analyze the relationship between the following nutrition data and lab results.\n\n"
        f"{_figures_block(bundle)}\n"
        f"{_food_log_block(bundle)}"
        f"{_window_line(bundle)}\n"
        f"{_lab_block(bundle)}\n"
        f"{_profile_block(bundle.profile)}\n"
        "Focus areas:\n"
        "- Specific links between dietary patterns and lab values, with plausible mechanisms.\n"
        "- Confounding factors and uncertainty; do not overstate causality.\n"
        "- Dietary interventions most likely to improve out-of-range biomarkers.\n\n"
        f"{_calibration(bundle)}\n"
        "Output JSON schema (STRICT):\n"
        f"{_result_schema()}\n"
        f"{_schema_rules()}"
    )


def _nutrient_schema(indent: str) -> str:
    return ",\n".join(f'{indent}"{k}": number' for k in NUTRIENT_KEYS)


def _lookup_calibration() -> str:
    return (
        "Confidence calibration:\n"
        "- No logged history is involved; base confidence on how unambiguous the item is.\n"
        "- Use 80-95 for a specific, well-known item, 50-70 for a generic or ambiguous one, below 50 if guessing.\n"
    )


def _queries(bundle: InputBundle) -> List[str]:
    return [str(r.get("query")) for r in bundle.windowed_records if r.get("record_type") == "query"]


def _item_lookup_prompt(bundle: InputBundle) -> str:
    query = (_queries(bundle) or [""])[0]
    extra = (
        '  "name": "string",\n'
        '  "normalizedName": "string",\n'
        '  "nutrition": {\n'
        f"{_nutrient_schema('    ')}\n"
        "  },\n"
        '  "weightConversion": {"grams": number, "ounces": number, "pounds": number} | null,\n'
    )
    return (
        "You are a nutrition expert with comprehensive knowledge of food composition. "
        "Provide the nutritional content of the following food item for the stated portion.\n\n"
        f'Food item: "{query}"\n\n'
        "Units: macronutrients in g (calories in kcal); vitamins in mcg except vitamin C, E, K and niacin in mg; "
        "minerals in mg except selenium in mcg; creatine in g only when naturally present.\n"
        "Include weightConversion only when the portion is not already weight-based.\n"
        "insights describe the item's notable nutritional traits; recommendations describe how to fit it into a diet.\n\n"
        f"{_lookup_calibration()}\n"
        "Output JSON schema (STRICT):\n"
        f"{_result_schema(extra)}\n"
        f"{_schema_rules()}"
    )


def _item_bulk_lookup_prompt(bundle: InputBundle) -> str:
    queries = _queries(bundle)
    listing = "\n".join(f"{i + 1}. {q}" for i, q in enumerate(queries))
    extra = (
        '  "items": [\n'
        "    {\n"
        '      "name": "string",\n'
        '      "normalizedName": "string",\n'
        '      "nutrition": {\n'
        f"{_nutrient_schema('        ')}\n"
        "      },\n"
        '      "confidence": number\n'
        "    }\n"
        "  ],\n"
    )
    return (
        "You are a nutrition expert with comprehensive knowledge of food composition. "
        "Provide nutritional content for each of the following food items.\n\n"
        f"Food items ({len(queries)}):\n{listing}\n\n"
        f"The items array MUST contain exactly {len(queries)} entries in the same order as listed.\n"
        "insights and recommendations apply to the list as a whole.\n\n"
        f"{_lookup_calibration()}\n"
        "Output JSON schema (STRICT):\n"
        f"{_result_schema(extra)}\n"
        f"{_schema_rules()}"
    )


def _substance_lookup_prompt(bundle: InputBundle) -> str:
    query = (_queries(bundle) or [""])[0]
    content = ",\n".join(f'    "{k}": number' for k in SUPPLEMENT_CONTENT_KEYS)
    extra = (
        '  "name": "string",\n'
        '  "brand": "string|null",\n'
        '  "dosage": number,\n'
        '  "unit": "string",\n'
        '  "form": "capsule|tablet|liquid|powder|gummy|injection|patch|other",\n'
        '  "activeIngredients": ["string"],\n'
        '  "content": {\n'
        f"{content}\n"
        "  },\n"
        '  "instructions": "string|null",\n'
        '  "notes": "string|null",\n'
    )
    return (
        "You are a supplement and medication expert. Identify the following supplement and describe it.\n\n"
        f'Query: "{query}"\n\n'
        "Use 0 for compounds not present. notes cover primary uses, typical dosage, absorption tips and "
        "interactions or contraindications. insights and recommendations are about this supplement.\n\n"
        f"{_lookup_calibration()}\n"
        "Output JSON schema (STRICT):\n"
        f"{_result_schema(extra)}\n"
        f"{_schema_rules()}"
    )


_TEMPLATES = {
    AnalysisKind.nutrition: _nutrition_prompt,
    AnalysisKind.labwork: _labwork_prompt,
    AnalysisKind.correlation: _correlation_prompt,
    AnalysisKind.item_lookup: _item_lookup_prompt,
    AnalysisKind.item_bulk_lookup: _item_bulk_lookup_prompt,
    AnalysisKind.substance_lookup: _substance_lookup_prompt,
}


def compose(bundle: InputBundle, backend: BackendChoice) -> ComposedRequest:
    template = _TEMPLATES[bundle.analysis_kind]
    return ComposedRequest(
        system=SYSTEM_PROMPT,
        prompt=template(bundle),
        backend=backend,
        max_tokens=MAX_TOKENS[bundle.analysis_kind],
        temperature=settings.llm_temperature,
        analysis_kind=bundle.analysis_kind,
    )


def _result_for_prompt(result: StructuredResult) -> Dict[str, Any]:
    return {
        "model": result.model_id,
        "confidence": round(result.confidence * 100),
        "summary": result.summary,
        "insights": list(result.insights),
        "recommendations": list(result.recommendations),
        "detailedAnalysis": result.detailed_analysis,
    }


def compose_reconciliation(
    bundle: InputBundle,
    original: StructuredResult,
    independent: StructuredResult,
    backend: BackendChoice,
) -> ComposedRequest:
    prompt = (
        f"Two independent {bundle.analysis_kind.value} analyses were produced from the same data.\n\n"
        f"{_figures_block(bundle)}\n"
        f"ANALYSIS A (original, {original.model_id}):\n{_dump(_result_for_prompt(original))}\n\n"
        f"ANALYSIS B (second opinion, {independent.model_id}):\n{_dump(_result_for_prompt(independent))}\n\n"
        "Write a reconciliation report with these sections:\n"
        "1. Overall agreement: state whether the analyses broadly agree or disagree, and on what.\n"
        "2. Analysis A key findings: summarize its most important findings.\n"
        "3. Analysis B key findings: summarize its most important findings.\n"
        "4. Unique contributions: what each analysis raised that the other missed.\n"
        "5. Points of disagreement: where they conflict and which is better supported by the figures above.\n"
        "Write plain prose or markdown headings. Do NOT return JSON.\n"
    )
    return ComposedRequest(
        system=RECONCILIATION_SYSTEM_PROMPT,
        prompt=prompt,
        backend=backend,
        max_tokens=RECONCILIATION_MAX_TOKENS,
        temperature=settings.llm_temperature,
        analysis_kind=bundle.analysis_kind,
    )
