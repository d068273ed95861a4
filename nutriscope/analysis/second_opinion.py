# -*- coding: utf-8 -*-
"""Analysis — second opinions from an alternate backend.

An independent pass over the stored input bundle, followed by a reconciliation
pass that compares it with the original result. Nothing here falls back: any
failure propagates to the caller, who may retry.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import settings
from .backends import BackendChoice
from .errors import TransportError
from .gateway import GatewayResponse, invoke
from .models import AnalysisRecord
from .prompts import compose, compose_reconciliation
from .sanitize import validate_result

log = logging.getLogger(__name__)


def _queries(record: AnalysisRecord) -> list[str]:
    return [
        str(r.get("query") or "")
        for r in record.input_bundle.windowed_records
        if r.get("record_type") == "query"
    ]


def generate_second_opinion(
    record: AnalysisRecord,
    backend: BackendChoice,
    *,
    client: Optional[httpx.Client] = None,
) -> GatewayResponse:
    bundle = record.input_bundle
    owns_client = client is None
    http = client or httpx.Client(timeout=settings.llm_timeout, follow_redirects=True)
    try:
        # The original result is deliberately absent from this prompt.
        independent_raw = invoke(compose(bundle, backend), client=http)
        independent = validate_result(
            independent_raw.text,
            model_id=backend.model_id,
            kind=bundle.analysis_kind,
            queries=_queries(record),
        )
        log.info("independent %s analysis for %s done by %s", bundle.analysis_kind.value, record.id, backend.model_id)

        reconciliation = invoke(
            compose_reconciliation(bundle, record.result, independent, backend),
            client=http,
        )
    finally:
        if owns_client:
            http.close()

    text = reconciliation.text.strip()
    if not text:
        raise TransportError(f"{backend.model_id}: empty reconciliation report", model_id=backend.model_id)
    log.info("reconciliation for %s done by %s (%d chars)", record.id, backend.model_id, len(text))
    return GatewayResponse(text=text, model_id=backend.model_id)
