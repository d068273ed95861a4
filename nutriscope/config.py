from __future__ import annotations

import os
from pathlib import Path
from typing import List


class Settings:
    """Centralized configuration for the analysis backend."""

    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent
        repo_root = base_dir.parent
        data_root_default = repo_root / "data"

        self.data_root: Path = Path(
            os.environ.get("NUTRISCOPE_DATA_ROOT") or data_root_default
        ).expanduser()
        self.app_db_path: Path = Path(
            os.environ.get("NUTRISCOPE_DB_PATH") or (self.data_root / "nutriscope.db")
        ).expanduser()

        # ---- Generative-text backends ----
        # Backend choices are "<provider>/<model>"; a bare model name uses the default provider.
        self.default_backend: str = (
            os.environ.get("NUTRISCOPE_DEFAULT_BACKEND") or "openai/gpt-4o-mini"
        ).strip()
        self.second_opinion_backend: str = (
            os.environ.get("NUTRISCOPE_SECOND_OPINION_BACKEND") or "qwen/qwen-plus"
        ).strip()
        # No fixed contract for the backend wait time; keep it configurable.
        self.llm_timeout: float = float(os.environ.get("NUTRISCOPE_LLM_TIMEOUT") or "60")
        self.llm_temperature: float = float(os.environ.get("NUTRISCOPE_LLM_TEMPERATURE") or "0.3")

        self.openai_api_key: str | None = os.environ.get("OPENAI_API_KEY")
        self.openai_base_url: str = os.environ.get(
            "OPENAI_BASE_URL", "https://api.openai.com/v1"
        )
        self.qwen_api_key: str | None = os.environ.get("QWEN_API_KEY")
        self.qwen_base_url: str = os.environ.get(
            "QWEN_BASE_URL", "https://dashscope.aliyuncs.com/compatible-mode/v1"
        )
        self.opencode_base_url: str = os.environ.get(
            "OPENCODE_BASE_URL", "http://127.0.0.1:4096"
        )
        self.opencode_directory: Path = Path(
            os.environ.get("OPENCODE_DIRECTORY", repo_root)
        ).expanduser()
        self.opencode_agent: str = (os.environ.get("OPENCODE_AGENT") or "general").strip() or "general"

        models = os.environ.get(
            "NUTRISCOPE_MODELS",
            "openai/gpt-4o-mini,openai/gpt-4o,openai/gpt-4-turbo,openai/gpt-3.5-turbo,qwen/qwen-plus",
        )
        self.available_models: List[str] = [m.strip() for m in models.split(",") if m.strip()]

        cors = os.environ.get("CORS_ORIGINS", "*")
        if cors.strip() == "*":
            self.cors_origins: List[str] = ["*"]
        else:
            self.cors_origins = [
                origin.strip() for origin in cors.split(",") if origin.strip()
            ]


settings = Settings()
