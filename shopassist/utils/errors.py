# =============================================
# File: shopassist/utils/errors.py
# Purpose: Error taxonomy shared by services and routers
# =============================================
from __future__ import annotations


class ChatInputError(ValueError):
    """Rejected user input (empty/over-length message, malformed session id)."""


class ProviderError(RuntimeError):
    """An external capability (embeddings, index, completions) failed."""


class RetrievalError(ProviderError):
    """Embedding or vector index failure during a lookup."""


class GenerationError(ProviderError):
    """Language model failure while producing the final answer."""
