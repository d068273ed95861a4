# -*- coding: utf-8 -*-
"""Analysis — error taxonomy.

Backend and response errors raised during a primary analysis are converted
into the fallback result; during a second opinion they propagate.
"""

from __future__ import annotations

from typing import Optional


class AnalysisError(Exception):
    """Base class for every error raised by the analysis pipeline."""

    def __init__(self, message: str, *, model_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.model_id = model_id


class NoDataError(AnalysisError):
    """Nothing to analyze for the requested snapshot."""


class RecordNotFoundError(AnalysisError):
    """No stored analysis with the requested id."""


class BackendError(AnalysisError):
    """Failure while talking to a generative-text backend."""


class ConfigurationError(BackendError):
    """Backend credentials or settings are absent or placeholders."""


class AuthenticationError(BackendError):
    """Backend rejected the configured credentials."""


class QuotaExceededError(BackendError):
    """Backend billing or usage limit reached."""


class TransportError(BackendError):
    """Network, timeout or otherwise unclassified backend failure."""


class ResponseError(AnalysisError):
    """Backend answered, but the answer could not be turned into a result."""


class ParseError(ResponseError):
    """Backend text is not a recoverable structured object."""


class ValidationError(ResponseError):
    """Structured object is missing a required field after coercion."""
