"""
Error taxonomy shared by the answering pipeline and ingestion.

Only ``ConfigurationError`` (and its subclasses) is allowed to escape the
answering pipeline; everything else is logged and degraded by the stage
that caught it.
"""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Missing credentials or invalid settings. Fatal, never retried."""


class EmbeddingDimensionError(ConfigurationError):
    """Provider vector length differs from the configured expectation."""

    def __init__(self, expected: int, actual: int, model: str):
        self.expected = expected
        self.actual = actual
        self.model = model
        super().__init__(
            f"Embedding dimension mismatch from provider. Expected {expected}, got {actual}. "
            f"Model={model}. Align the vector store column with the actual output, "
            "or fix the provider/model config."
        )


class GenerationError(RuntimeError):
    """The generation provider failed, blocked the prompt, or returned no text."""

    def __init__(self, message: str, *, model: str | None = None, status_code: int | None = None):
        self.model = model
        self.status_code = status_code
        super().__init__(message)


class VectorStoreError(RuntimeError):
    """A vector store lookup, insert, or delete failed."""


class IngestionError(RuntimeError):
    """Source manifest is missing, malformed, or lacks a required URL."""
