# =============================================
# File: shopassist/services/generation.py
# Purpose: Chat completions with OpenAI (gpt-4o-mini) + per-call timeout & retries
# =============================================
from __future__ import annotations
import os
from typing import Dict, List, Optional

from loguru import logger
from openai import OpenAI  # OpenAI Python SDK v1

from ..utils.errors import GenerationError

DEFAULT_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "1500"))
TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_SECONDS", "20"))
MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "1"))


class CompletionClient:
    """
    Thin wrapper over chat.completions. The SDK client is built on first use
    so importing the app never needs OPENAI_API_KEY.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        timeout: float = TIMEOUT_S,
        max_retries: int = MAX_RETRIES,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            try:
                self._client = OpenAI()
            except Exception as e:
                raise GenerationError(f"completion provider unavailable: {e}") from e
        return self._client

    def _chat_completion_with_retry(self, messages: List[Dict], temperature: float, max_tokens: int) -> str:
        """
        Try up to max_retries+1 times with `timeout` seconds each.
        Empty content counts as a failed attempt.
        """
        last_err: Optional[Exception] = None
        attempts = max(1, self.max_retries + 1)
        for attempt in range(1, attempts + 1):
            try:
                resp = self.client.chat.completions.create(
                    model=self.model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    messages=messages,
                    timeout=self.timeout,  # SDK v1 supports per-call timeout
                )
                text = (resp.choices[0].message.content or "").strip() if resp.choices else ""
                if text:
                    return text
                last_err = GenerationError("empty completion")
            except GenerationError:
                raise
            except Exception as e:
                last_err = e
            logger.warning(f"[llm] attempt {attempt}/{attempts} failed: {last_err}")
        raise GenerationError(f"completion failed after {attempts} attempt(s): {last_err}") from last_err

    def complete(self, messages: List[Dict], temperature: float = 0.7, max_tokens: int = MAX_TOKENS) -> str:
        return self._chat_completion_with_retry(messages, temperature, max_tokens)
