# -*- coding: utf-8 -*-
"""Backend selection.

A backend choice is an opaque "<provider>/<model>" string threaded through
every call (there is no global "current model"). The provider decides which
wire family the gateway speaks:

- chat_completions: OpenAI and any OpenAI-compatible endpoint (Qwen/DashScope)
- opencode: an OpenCode server's session/message API
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..config import settings
from .errors import ConfigurationError

FAMILY_CHAT_COMPLETIONS = "chat_completions"
FAMILY_OPENCODE = "opencode"

PROVIDER_FAMILIES: Dict[str, str] = {
    "openai": FAMILY_CHAT_COMPLETIONS,
    "qwen": FAMILY_CHAT_COMPLETIONS,
    "opencode": FAMILY_OPENCODE,
}

# Written into .env templates; treat them as "not configured".
_PLACEHOLDER_KEYS = {"your-openai-api-key-here", "your-api-key-here", "changeme", "sk-..."}


@dataclass(frozen=True)
class BackendChoice:
    provider: str
    model: str
    family: str

    @property
    def model_id(self) -> str:
        return f"{self.provider}/{self.model}"


@dataclass(frozen=True)
class ChatCompletionsCredentials:
    base_url: str
    api_key: str


def resolve_backend(choice: Optional[str]) -> BackendChoice:
    raw = (choice or settings.default_backend or "").strip()
    if not raw:
        raise ConfigurationError("No backend selected and no default backend configured")
    if "/" in raw:
        provider, model = raw.split("/", 1)
    else:
        provider = settings.default_backend.split("/", 1)[0] if "/" in settings.default_backend else "openai"
        model = raw
    provider = provider.strip().lower()
    model = model.strip()
    family = PROVIDER_FAMILIES.get(provider)
    if family is None:
        raise ConfigurationError(f"Unknown backend provider: {provider}", model_id=raw)
    if not model:
        raise ConfigurationError(f"Backend model missing in choice: {raw}", model_id=raw)
    return BackendChoice(provider=provider, model=model, family=family)


def is_placeholder_key(api_key: Optional[str]) -> bool:
    if not api_key or not api_key.strip():
        return True
    key = api_key.strip()
    return key.lower() in _PLACEHOLDER_KEYS or key.lower().startswith("your-")


def mask_key(api_key: str) -> str:
    if len(api_key) <= 11:
        return "***"
    return f"{api_key[:7]}...{api_key[-4:]}"


def chat_completions_credentials(backend: BackendChoice) -> ChatCompletionsCredentials:
    if backend.provider == "openai":
        api_key, base_url, env_name = settings.openai_api_key, settings.openai_base_url, "OPENAI_API_KEY"
    elif backend.provider == "qwen":
        api_key, base_url, env_name = settings.qwen_api_key, settings.qwen_base_url, "QWEN_API_KEY"
    else:
        raise ConfigurationError(
            f"Provider {backend.provider} does not speak chat completions", model_id=backend.model_id
        )
    if is_placeholder_key(api_key):
        raise ConfigurationError(
            f"{env_name} is not configured. Please set it in your environment.",
            model_id=backend.model_id,
        )
    if not base_url:
        raise ConfigurationError(f"Base URL missing for {backend.provider}", model_id=backend.model_id)
    return ChatCompletionsCredentials(base_url=base_url.rstrip("/"), api_key=str(api_key).strip())


def list_backends() -> List[Dict[str, object]]:
    """Configured choices for a model picker; unparseable entries are skipped."""
    out: List[Dict[str, object]] = []
    seen = set()
    try:
        default_id = resolve_backend(None).model_id
    except ConfigurationError:
        default_id = None
    for value in [settings.default_backend, *settings.available_models]:
        try:
            backend = resolve_backend(value)
        except ConfigurationError:
            continue
        if backend.model_id in seen:
            continue
        seen.add(backend.model_id)
        out.append(
            {
                "value": backend.model_id,
                "provider": backend.provider,
                "family": backend.family,
                "default": backend.model_id == default_id,
            }
        )
    return out
