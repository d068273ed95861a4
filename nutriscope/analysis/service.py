# -*- coding: utf-8 -*-
"""Analysis — orchestration.

Aggregate -> compose -> invoke -> validate (-> fallback) -> store.

The primary pipeline always yields a stored record: once there is data to
analyze, every backend or output failure degrades to the low-confidence
fallback result. Second opinions never degrade; their failures propagate.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from ..config import settings
from . import storage
from .backends import list_backends, resolve_backend
from .context import SnapshotReader, build_input_bundle
from .errors import BackendError, ParseError, RecordNotFoundError, ResponseError
from .fallback import UNAVAILABLE_MODEL_ID, fallback_result
from .gateway import invoke
from .models import AnalysisRecord, InputBundle, ModelOption, SecondOpinion, SnapshotRef, StructuredResult
from .prompts import compose
from .sanitize import validate_result
from .second_opinion import generate_second_opinion

log = logging.getLogger(__name__)

_RAW_LOG_LIMIT = 500


def _queries(bundle: InputBundle) -> List[str]:
    return [str(r.get("query") or "") for r in bundle.windowed_records if r.get("record_type") == "query"]


def _primary_result(
    bundle: InputBundle,
    backend_choice: Optional[str],
    *,
    client: Optional[httpx.Client],
) -> tuple[StructuredResult, bool]:
    attempted = (backend_choice or settings.default_backend or "").strip() or UNAVAILABLE_MODEL_ID
    raw_text: Optional[str] = None
    try:
        backend = resolve_backend(backend_choice)
        attempted = backend.model_id
        request = compose(bundle, backend)
        response = invoke(request, client=client)
        raw_text = response.text
        result = validate_result(
            raw_text,
            model_id=backend.model_id,
            kind=bundle.analysis_kind,
            queries=_queries(bundle),
        )
        return result, False
    except (BackendError, ResponseError) as exc:
        if isinstance(exc, ParseError) and raw_text is not None:
            log.warning("unparseable %s output (first %d chars): %s", attempted, _RAW_LOG_LIMIT, raw_text[:_RAW_LOG_LIMIT])
        log.error(
            "%s analysis via %s failed, using fallback: %s",
            bundle.analysis_kind.value,
            attempted,
            exc,
            exc_info=True,
        )
        return fallback_result(bundle.analysis_kind, model_id=exc.model_id or attempted, bundle=bundle), True
    except (KeyError, TypeError, ValueError) as exc:
        # Composition over an unexpected record shape.
        log.error("%s analysis could not be prepared: %s", bundle.analysis_kind.value, exc, exc_info=True)
        return fallback_result(bundle.analysis_kind, model_id=attempted, bundle=bundle), True


def run_analysis(
    ref: SnapshotRef,
    backend_choice: Optional[str] = None,
    *,
    reader: Optional[SnapshotReader] = None,
    client: Optional[httpx.Client] = None,
) -> AnalysisRecord:
    """Run the primary pipeline and persist its result.

    Raises NoDataError when there is nothing to analyze; no other pipeline
    error reaches the caller.
    """
    bundle = build_input_bundle(ref, reader)
    result, is_fallback = _primary_result(bundle, backend_choice, client=client)
    record = storage.create_analysis(user_ref=ref.user_id, bundle=bundle, result=result, fallback=is_fallback)
    log.info(
        "stored %s analysis %s for user %s (model=%s, confidence=%.2f, fallback=%s)",
        record.analysis_kind.value,
        record.id,
        ref.user_id,
        result.model_id,
        result.confidence,
        is_fallback,
    )
    return record


def get_analysis(record_id: str, *, user_ref: Optional[str] = None) -> AnalysisRecord:
    record = storage.get_analysis(record_id, user_ref=user_ref)
    if record is None:
        raise RecordNotFoundError(f"Analysis not found: {record_id}")
    return record


def request_second_opinion(
    record_id: str,
    alternate_backend_choice: Optional[str] = None,
    *,
    user_ref: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> SecondOpinion:
    record = get_analysis(record_id, user_ref=user_ref)
    backend = resolve_backend(alternate_backend_choice or settings.second_opinion_backend)

    existing = storage.get_second_opinion(record.id, backend.model_id)
    if existing is not None:
        log.info("second opinion for %s by %s already stored", record.id, backend.model_id)
        return existing
    if backend.model_id == record.result.model_id:
        log.warning("second opinion for %s uses the same backend as the original (%s)", record.id, backend.model_id)

    response = generate_second_opinion(record, backend, client=client)
    return storage.attach_second_opinion(record.id, model_id=response.model_id, text=response.text)


def list_analyses(
    user_id: str,
    kind: Optional[str] = None,
    *,
    limit: int = 50,
    offset: int = 0,
) -> List[AnalysisRecord]:
    return storage.list_analyses(user_ref=user_id, analysis_kind=kind, limit=limit, offset=offset)


def delete_analysis(record_id: str, *, user_ref: str) -> None:
    if not storage.delete_analysis(record_id, user_ref=user_ref):
        raise RecordNotFoundError(f"Analysis not found: {record_id}")


def list_models() -> List[ModelOption]:
    return [ModelOption(**option) for option in list_backends()]
