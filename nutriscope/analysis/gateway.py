# -*- coding: utf-8 -*-
"""Analysis — generative-text backend calls.

One outbound call per invocation and no automatic retries: retrying a paid
backend is the caller's decision. The raw text is returned verbatim; every
failure is raised as a typed BackendError.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

import httpx

from ..config import settings
from .backends import (
    FAMILY_CHAT_COMPLETIONS,
    FAMILY_OPENCODE,
    chat_completions_credentials,
    mask_key,
)
from .errors import (
    AuthenticationError,
    BackendError,
    ConfigurationError,
    QuotaExceededError,
    TransportError,
)
from .prompts import ComposedRequest

log = logging.getLogger(__name__)

_QUOTA_CODES = {"insufficient_quota", "billing_hard_limit_reached", "quota_exceeded"}
_AUTH_CODES = {"invalid_api_key", "invalid_authentication", "authentication_error"}


@dataclass(frozen=True)
class GatewayResponse:
    text: str
    model_id: str


def _pick_str(value: object) -> Optional[str]:
    if isinstance(value, str):
        s = value.strip()
        return s if s else None
    return None


def _error_fields(body: object) -> tuple[Optional[str], Optional[str]]:
    """Return (code, message) from an OpenAI-style error payload."""
    if not isinstance(body, dict):
        return None, None
    err = body.get("error")
    if isinstance(err, dict):
        code = _pick_str(err.get("code")) or _pick_str(err.get("type"))
        return code, _pick_str(err.get("message"))
    if isinstance(err, str):
        return None, _pick_str(err)
    return _pick_str(body.get("code")), _pick_str(body.get("message")) or _pick_str(body.get("detail"))


def classify_http_error(
    status: int,
    body: object,
    *,
    model_id: str,
    fallback_message: str = "",
) -> BackendError:
    code, message = _error_fields(body)
    code_l = (code or "").lower()
    message = message or fallback_message or f"HTTP {status}"
    text = message.lower()
    detail = f"{model_id}: {message}"

    if code_l in _QUOTA_CODES or "quota" in code_l or status == 402 or "quota" in text or "billing" in text:
        return QuotaExceededError(f"Backend quota exceeded ({detail})", model_id=model_id)
    if code_l in _AUTH_CODES or status in (401, 403):
        return AuthenticationError(f"Backend rejected credentials ({detail})", model_id=model_id)
    if code_l == "model_not_found" or status == 404:
        return TransportError(f"Model not found ({detail})", model_id=model_id)
    if status == 429:
        return TransportError(f"Backend rate limited ({detail})", model_id=model_id)
    return TransportError(f"Backend error {status} ({detail})", model_id=model_id)


def _json_or_raise(resp: httpx.Response, *, model_id: str) -> object:
    content_type = (resp.headers.get("content-type") or "").lower()
    if resp.status_code >= 400:
        try:
            body: object = resp.json()
        except ValueError:
            body = None
        snippet = (resp.text or "").replace("\n", " ").strip()[:200]
        raise classify_http_error(resp.status_code, body, model_id=model_id, fallback_message=snippet)
    if "text/html" in content_type:
        raise TransportError(f"{model_id}: backend returned HTML", model_id=model_id)
    raw = resp.text or ""
    if not raw.strip():
        raise TransportError(f"{model_id}: backend returned an empty body", model_id=model_id)
    try:
        return resp.json()
    except ValueError as exc:
        snippet = raw.replace("\n", " ").strip()[:200]
        raise TransportError(f"{model_id}: non-JSON response: {snippet}", model_id=model_id) from exc


# ---------- chat completions (OpenAI-compatible) ----------


def _chat_completions_url(base_url: str) -> str:
    base = base_url.rstrip("/")
    if base.endswith("/chat/completions"):
        return base
    return f"{base}/chat/completions"


def _extract_choice_text(data: object) -> str:
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    message = first.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    if isinstance(first.get("text"), str):
        return first["text"]
    return ""


def _call_chat_completions(client: httpx.Client, request: ComposedRequest) -> str:
    backend = request.backend
    creds = chat_completions_credentials(backend)
    log.info("using %s API key %s", backend.provider, mask_key(creds.api_key))
    payload = {
        "model": backend.model,
        "messages": [
            {"role": "system", "content": request.system},
            {"role": "user", "content": request.prompt},
        ],
        "max_tokens": request.max_tokens,
        "temperature": request.temperature,
    }
    resp = client.post(
        _chat_completions_url(creds.base_url),
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {creds.api_key}",
        },
        json=payload,
    )
    data = _json_or_raise(resp, model_id=backend.model_id)
    text = _extract_choice_text(data)
    if not text:
        _, message = _error_fields(data)
        if message:
            raise classify_http_error(resp.status_code, data, model_id=backend.model_id)
    return text


# ---------- OpenCode session API ----------


def _concat_text_parts(parts: object) -> str:
    if not isinstance(parts, list):
        return ""
    out: list[str] = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        ptype = part.get("type")
        if ptype and ptype not in {"text", "output_text"}:
            continue
        for key in ("text", "content", "value"):
            val = part.get(key)
            if isinstance(val, str) and val:
                out.append(val)
                break
    return "".join(out)


def _extract_text_from_opencode_response(data: object) -> str:
    if not isinstance(data, dict):
        return ""
    content = _concat_text_parts(data.get("parts"))
    if content:
        return content
    for key in ("info", "message"):
        nested = data.get(key)
        if isinstance(nested, dict):
            content = _concat_text_parts(nested.get("parts"))
            if content:
                return content
            maybe = nested.get("content")
            if isinstance(maybe, str) and maybe:
                return maybe
    return _extract_choice_text(data)


def _opencode_error(data: object, *, model_id: str) -> Optional[BackendError]:
    """Classify an error object embedded in an OpenCode message response."""
    if not isinstance(data, dict):
        return None

    def from_json_str(raw: Optional[str]) -> Optional[object]:
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    candidates = []
    info = data.get("info")
    if isinstance(info, dict):
        candidates.append(info.get("error"))
    candidates.append(data.get("error"))

    for err in candidates:
        if not isinstance(err, dict):
            continue
        name = _pick_str(err.get("name")) or "OpenCodeError"
        err_data = err.get("data") if isinstance(err.get("data"), dict) else {}
        status = err_data.get("statusCode") if isinstance(err_data.get("statusCode"), int) else 0
        message = _pick_str(err_data.get("message")) or _pick_str(err.get("message"))
        body = from_json_str(_pick_str(err_data.get("responseBody")))
        _, body_message = _error_fields(body)
        message = body_message or message
        if not message:
            continue
        if name == "ProviderAuthError" and not status:
            status = 401
        return classify_http_error(
            status or 500,
            body if isinstance(body, dict) else None,
            model_id=model_id,
            fallback_message=f"{name}: {message}",
        )
    return None


def _opencode_model(backend_model: str) -> Dict[str, str]:
    if "/" in backend_model:
        provider_id, model_id = backend_model.split("/", 1)
    else:
        provider_id, model_id = "opencode", backend_model
    return {"providerID": provider_id, "modelID": model_id}


def _call_opencode(client: httpx.Client, request: ComposedRequest) -> str:
    backend = request.backend
    base = settings.opencode_base_url.rstrip("/")
    if not base:
        raise ConfigurationError("OPENCODE_BASE_URL is not configured", model_id=backend.model_id)
    parsed = urlparse(base)
    session_url = f"{parsed.scheme}://{parsed.netloc}/session"
    headers = {
        "Content-Type": "application/json",
        "x-opencode-directory": str(settings.opencode_directory),
    }

    session_resp = client.post(session_url, headers=headers, json={"title": f"analysis-{request.analysis_kind.value}"})
    session = _json_or_raise(session_resp, model_id=backend.model_id)
    session_id = None
    if isinstance(session, dict):
        session_id = session.get("id") or session.get("session_id")
    if not session_id:
        raise TransportError("OpenCode session id missing", model_id=backend.model_id)

    payload: Dict[str, Any] = {
        "system": request.system,
        "agent": settings.opencode_agent,
        "model": _opencode_model(backend.model),
        "parts": [{"type": "text", "text": request.prompt}],
    }
    resp = client.post(f"{session_url}/{session_id}/message", headers=headers, json=payload)
    data = _json_or_raise(resp, model_id=backend.model_id)
    error = _opencode_error(data, model_id=backend.model_id)
    if error is not None:
        raise error
    return _extract_text_from_opencode_response(data)


_FAMILIES: Dict[str, Callable[[httpx.Client, ComposedRequest], str]] = {
    FAMILY_CHAT_COMPLETIONS: _call_chat_completions,
    FAMILY_OPENCODE: _call_opencode,
}


def invoke(request: ComposedRequest, *, client: Optional[httpx.Client] = None) -> GatewayResponse:
    backend = request.backend
    handler = _FAMILIES.get(backend.family)
    if handler is None:
        raise ConfigurationError(f"Unsupported backend family: {backend.family}", model_id=backend.model_id)

    log.info(
        "invoking %s for %s (max_tokens=%d, temperature=%.2f)",
        backend.model_id,
        request.analysis_kind.value,
        request.max_tokens,
        request.temperature,
    )
    owns_client = client is None
    http = client or httpx.Client(timeout=settings.llm_timeout, follow_redirects=True)
    try:
        text = handler(http, request)
    except BackendError:
        raise
    except httpx.TimeoutException as exc:
        raise TransportError(f"{backend.model_id}: request timed out: {exc}", model_id=backend.model_id) from exc
    except httpx.HTTPError as exc:
        raise TransportError(f"{backend.model_id}: backend unreachable: {exc}", model_id=backend.model_id) from exc
    except httpx.InvalidURL as exc:
        raise TransportError(f"{backend.model_id}: invalid backend URL: {exc}", model_id=backend.model_id) from exc
    finally:
        if owns_client:
            http.close()

    if not text or not text.strip():
        raise TransportError(f"{backend.model_id}: backend returned no text", model_id=backend.model_id)
    return GatewayResponse(text=text, model_id=backend.model_id)
