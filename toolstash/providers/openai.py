"""OpenAI-compatible embedding backend for the semantic index."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence

from dotenv import load_dotenv
from openai import APIStatusError, AsyncOpenAI

from ..config import resolve_api_key
from ..errors import EmbeddingError, EmbeddingMismatchError
from ..text import Messages

logger = logging.getLogger(__name__)


class OpenAIEmbeddingBackend:
    """Embedding backend that calls an ``/embeddings`` endpoint asynchronously."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        load_dotenv()
        if client is not None:
            self._client = client
            return
        self.api_key = resolve_api_key(api_key)
        if not self.api_key:
            raise EmbeddingError(Messages.ERROR_API_KEY_MISSING)
        client_kwargs: dict[str, object] = {"api_key": self.api_key}
        if base_url:
            client_kwargs["base_url"] = base_url.rstrip("/")
        self._client = AsyncOpenAI(**client_kwargs)

    async def embed(self, model: str, inputs: Sequence[str]) -> List[List[float]]:
        if not inputs:
            return []
        attempt = 0
        while True:
            try:
                response = await self._client.embeddings.create(
                    model=model,
                    input=list(inputs),
                )
                break
            except APIStatusError as exc:
                if exc.status_code in _RETRYABLE_STATUS_CODES and attempt < _MAX_RETRIES:
                    await _sleep(_backoff_delay(attempt))
                    attempt += 1
                    continue
                raise EmbeddingError(
                    Messages.ERROR_EMBED_HTTP.format(
                        status=exc.status_code,
                        body=_response_body(exc),
                    )
                ) from exc
            except Exception as exc:  # pragma: no cover - API client variations
                if _should_retry_openai_error(exc) and attempt < _MAX_RETRIES:
                    await _sleep(_backoff_delay(attempt))
                    attempt += 1
                    continue
                raise EmbeddingError(_format_openai_error(exc)) from exc
        data = sorted(getattr(response, "data", None) or [], key=lambda item: item.index)
        vectors = [list(item.embedding) for item in data]
        if len(vectors) != len(inputs):
            raise EmbeddingMismatchError(
                Messages.ERROR_EMBED_COUNT.format(expected=len(inputs), actual=len(vectors))
            )
        logger.debug("embedded %d inputs with %s", len(inputs), model)
        return vectors


_RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}
_MAX_RETRIES = 2
_RETRY_BASE_DELAY = 0.5
_RETRY_MAX_DELAY = 4.0


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


def _backoff_delay(attempt: int) -> float:
    return min(_RETRY_MAX_DELAY, _RETRY_BASE_DELAY * (2**attempt))


def _response_body(exc: APIStatusError) -> str:
    response = getattr(exc, "response", None)
    text = getattr(response, "text", None)
    if isinstance(text, str) and text:
        return text
    return getattr(exc, "message", None) or str(exc)


def _extract_status_code(exc: Exception) -> int | None:
    for attr in ("status_code", "status", "http_status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    if response is not None:
        value = getattr(response, "status_code", None)
        if isinstance(value, int):
            return value
    return None


def _should_retry_openai_error(exc: Exception) -> bool:
    status = _extract_status_code(exc)
    if status in _RETRYABLE_STATUS_CODES:
        return True
    name = exc.__class__.__name__.lower()
    if "ratelimit" in name or "timeout" in name or "temporarily" in name:
        return True
    message = str(exc).lower()
    return any(
        token in message
        for token in (
            "rate limit",
            "timeout",
            "temporar",
            "overload",
            "try again",
            "too many requests",
            "service unavailable",
        )
    )


def _format_openai_error(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return f"{Messages.ERROR_OPENAI_PREFIX}{message}"
