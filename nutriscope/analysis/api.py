# -*- coding: utf-8 -*-
"""Analysis — API endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth import get_current_user
from . import service
from .context import resolve_window
from .errors import (
    AnalysisError,
    ConfigurationError,
    NoDataError,
    QuotaExceededError,
    RecordNotFoundError,
)
from .models import (
    AnalysisKind,
    AnalysisListItem,
    AnalysisListResponse,
    AnalysisRecord,
    AnalysisRunRequest,
    ModelOption,
    SecondOpinion,
    SecondOpinionRequest,
    SnapshotRef,
)
from .storage import count_analyses, result_summary

router = APIRouter(prefix="/api/analysis", tags=["Analysis"])


def _http_error(exc: AnalysisError) -> HTTPException:
    if isinstance(exc, (NoDataError, RecordNotFoundError)):
        status = 404
    elif isinstance(exc, ConfigurationError):
        status = 503
    elif isinstance(exc, QuotaExceededError):
        status = 429
    else:
        # Authentication, transport and response errors: the upstream backend failed.
        status = 502
    return HTTPException(status_code=status, detail=str(exc))


@router.get("/models", response_model=List[ModelOption], summary="Configured backend choices")
def models(user: dict = Depends(get_current_user)):  # noqa: ARG001
    return service.list_models()


@router.post("/run", response_model=AnalysisRecord, summary="Run an analysis and store it")
def run(request: AnalysisRunRequest, user: dict = Depends(get_current_user)):
    start, end = resolve_window(start=request.start, end=request.end, days=request.days)
    ref = SnapshotRef(
        user_id=user["id"],
        analysis_kind=request.analysis_kind,
        start=start,
        end=end,
        record_ids=request.record_ids,
        queries=request.queries,
    )
    try:
        return service.run_analysis(ref, request.backend)
    except AnalysisError as exc:
        raise _http_error(exc) from exc


@router.get("/", response_model=AnalysisListResponse, summary="List stored analyses")
def list_(
    kind: Optional[AnalysisKind] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
):
    kind_value = kind.value if kind else None
    records = service.list_analyses(user["id"], kind_value, limit=limit, offset=offset)
    return AnalysisListResponse(
        count=count_analyses(user_ref=user["id"], analysis_kind=kind_value),
        items=[AnalysisListItem(**result_summary(r)) for r in records],
    )


@router.get("/{analysis_id}", response_model=AnalysisRecord, summary="Get a stored analysis")
def get(analysis_id: str, user: dict = Depends(get_current_user)):
    try:
        return service.get_analysis(analysis_id, user_ref=user["id"])
    except AnalysisError as exc:
        raise _http_error(exc) from exc


@router.post(
    "/{analysis_id}/second-opinion",
    response_model=SecondOpinion,
    summary="Request a reconciled second opinion from an alternate backend",
)
def second_opinion(
    analysis_id: str,
    request: Optional[SecondOpinionRequest] = None,
    user: dict = Depends(get_current_user),
):
    backend = request.backend if request else None
    try:
        return service.request_second_opinion(analysis_id, backend, user_ref=user["id"])
    except AnalysisError as exc:
        raise _http_error(exc) from exc


@router.delete("/{analysis_id}", summary="Delete a stored analysis")
def delete(analysis_id: str, user: dict = Depends(get_current_user)):
    try:
        service.delete_analysis(analysis_id, user_ref=user["id"])
    except AnalysisError as exc:
        raise _http_error(exc) from exc
    return {"ok": True}
