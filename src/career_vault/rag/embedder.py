"""Ollama provider wrapper with timeout and retry logic.

Wraps the ``ollama`` Python SDK's :class:`AsyncClient` to provide:

- **Embedding**: text → float vector via ``nomic-embed-text``, used to
  score vault items against a requirement
- **Generation**: prompt → LLM text via ``mistral:7b``, used for audit
  analysis and recommendation copy
- **Health check**: verify Ollama + models are available
- **Timeout**: every call is bounded by ``timeout_seconds``; a call that
  does not finish in time counts as a failed attempt
- **Retry with backoff**: transient 5xx errors, timeouts and connection
  failures are retried up to ``max_retries`` times with exponential
  backoff before giving up

All errors are converted to :class:`~career_vault.errors.ActionableError`
with operator-friendly guidance.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

import ollama as ollama_sdk

from career_vault.errors import ActionableError
from career_vault.logging import get_logger

logger = get_logger(__name__)

_T = TypeVar("_T")

# Status codes that warrant a retry (server overloaded / temporary failure)
_RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

# nomic-embed-text has an 8192-token window.  Vault items are short, but
# pasted requirements can be whole job postings.
_MAX_EMBED_CHARS = 8_000

# Keep the head (title, summary) and tail (specifics) of over-long text
_HEAD_RATIO = 0.6
_TRUNCATION_MARKER = "\n[…]\n"

_SYSTEM_PROMPT = (
    "You are a career coach reviewing a professional's career vault. "
    "Answer precisely and in the format requested."
)


class Embedder:
    """Wraps Ollama embedding and LLM calls with timeout, backoff and error handling.

    Usage::

        embedder = Embedder(
            base_url="http://localhost:11434",
            embed_model="nomic-embed-text",
            llm_model="mistral:7b",
        )
        await embedder.health_check()
        vec = await embedder.embed("Led a 12-person platform team")
        text = await embedder.generate("Summarise this vault ...")
    """

    def __init__(
        self,
        base_url: str,
        embed_model: str,
        llm_model: str,
        *,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self.base_url = base_url
        self.embed_model = embed_model
        self.llm_model = llm_model
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._client = ollama_sdk.AsyncClient(host=base_url, timeout=timeout_seconds)

    # -- Public API ----------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*.

        Raises VALIDATION for empty input.  Text longer than
        ``_MAX_EMBED_CHARS`` is cut down to its head and tail.
        """
        cleaned = text.strip()
        if not cleaned:
            raise ActionableError.validation(
                field_name="text",
                reason="cannot embed empty text",
                suggestion="Provide non-empty text to embed",
            )

        if len(cleaned) > _MAX_EMBED_CHARS:
            logger.debug(
                "Truncating embed input from %d to %d chars (head+tail)",
                len(cleaned),
                _MAX_EMBED_CHARS,
            )
            budget = _MAX_EMBED_CHARS - len(_TRUNCATION_MARKER)
            head_len = int(budget * _HEAD_RATIO)
            tail_len = budget - head_len
            cleaned = cleaned[:head_len] + _TRUNCATION_MARKER + cleaned[-tail_len:]

        async def _call() -> list[float]:
            response = await self._client.embed(model=self.embed_model, input=cleaned)
            return [float(v) for v in response.embeddings[0]]

        return await self._with_retry(_call, operation="embed")

    async def generate(self, prompt: str) -> str:
        """Send *prompt* to the LLM and return the raw response text."""

        async def _call() -> str:
            response = await self._client.chat(
                model=self.llm_model,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
            return response.message.content or ""

        return await self._with_retry(_call, operation="generate")

    async def health_check(self) -> None:
        """Verify Ollama is reachable and the configured models are available.

        Raises :class:`~career_vault.errors.ActionableError`:
          - CONNECTION if Ollama is unreachable
          - GENERATION if a required model is not pulled
        """
        try:
            response = await asyncio.wait_for(self._client.list(), timeout=self.timeout_seconds)
        except (ConnectionError, OSError, TimeoutError) as exc:
            raise ActionableError.connection(
                service="Ollama",
                url=self.base_url,
                raw_error=str(exc) or type(exc).__name__,
            ) from None

        # Ollama model names may carry a :latest suffix
        available = {m.model for m in response.models if m.model}
        available |= {name.split(":")[0] for name in available}

        for model in (self.embed_model, self.llm_model):
            if model not in available and model.split(":")[0] not in available:
                raise ActionableError.generation(
                    model=model,
                    raw_error=f"Model '{model}' is not pulled in Ollama",
                    suggestion=f"Run: ollama pull {model}",
                )

        logger.info(
            "Ollama health check passed — %s and %s available",
            self.embed_model,
            self.llm_model,
        )

    # -- Retry logic ---------------------------------------------------------

    def _model_for(self, operation: str) -> str:
        return self.embed_model if operation == "embed" else self.llm_model

    async def _with_retry(
        self,
        fn: Callable[[], Awaitable[_T]],
        *,
        operation: str,
    ) -> _T:
        """Call *fn* under a timeout with exponential backoff on retryable errors.

        Non-retryable errors (e.g. 404 model not found) fail immediately.
        After ``max_retries`` attempts, raises a GENERATION error.
        """
        last_error: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(fn(), timeout=self.timeout_seconds)
            except ollama_sdk.ResponseError as exc:
                last_error = exc
                if exc.status_code not in _RETRYABLE_STATUS_CODES:
                    raise ActionableError.generation(
                        model=self._model_for(operation),
                        raw_error=str(exc),
                    ) from None
                reason = f"status {exc.status_code}"
            except TimeoutError as exc:
                last_error = exc
                reason = f"timed out after {self.timeout_seconds:.1f}s"
            except (ConnectionError, OSError) as exc:
                last_error = exc
                reason = "connection failed"

            if attempt == self.max_retries:
                break
            delay = self.base_delay * (2 ** (attempt - 1))
            logger.warning(
                "Ollama %s attempt %d/%d %s, retrying in %.1fs: %s",
                operation,
                attempt,
                self.max_retries,
                reason,
                delay,
                last_error,
            )
            await asyncio.sleep(delay)

        raise ActionableError.generation(
            model=self._model_for(operation),
            raw_error=f"Failed after {self.max_retries} attempts: {last_error!r}",
            suggestion="Ollama may be overloaded or the timeout too short — check resources and retry",
        )
