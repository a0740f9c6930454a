"""Prompt execution and embedding client over httpx.

One long-lived ``LLMClient`` is created by the application lifespan and handed
to every service; nothing here is stored at module level. Three providers are
supported behind the same two calls (``execute_prompt`` / ``compute_embedding``):

- ``openai``: any OpenAI-compatible ``/chat/completions`` + ``/embeddings`` API
- ``dashscope``: Alibaba Cloud DashScope native text-generation endpoint
  (``llm_base_url`` is the full generation URL); embeddings go through the
  compatible-mode URL in ``llm_embedding_base_url``
- ``ollama``: a local model served by Ollama's native ``/api/chat`` (streamed,
  so long generations do not trip the read timeout) and ``/api/embed``

Every failure (network, HTTP status, timeout, unexpected body) surfaces as
``TransportError`` after the retry budget is spent.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar, overload

import httpx

from gradewise.config import Settings
from gradewise.exceptions import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in _RETRYABLE_STATUS
    return isinstance(error, (httpx.TimeoutException, httpx.TransportError))


def _completion_text(content: Any) -> str:
    # refusals and content-filter stops come back with "content": null
    if not isinstance(content, str):
        raise ValueError(f"completion carried no text (got {type(content).__name__})")
    return content.strip()


class LLMClient:
    """Async client for chat completion and embeddings."""

    def __init__(self, settings: Settings) -> None:
        self._provider = settings.llm_provider
        if self._provider != "ollama" and not settings.llm_api_key:
            raise ConfigurationError(
                f"llm_api_key is required for provider '{self._provider}'"
            )

        base_url = settings.llm_base_url.rstrip("/")
        # Ollama root is configured either bare or with the OpenAI-compat /v1 suffix
        if self._provider == "ollama" and base_url.endswith("/v1"):
            base_url = base_url[:-3]

        self._base_url = base_url
        self._embedding_base_url = settings.embedding_base_url.rstrip("/")
        self._model = settings.llm_model_name
        self._embedding_model = settings.llm_embedding_model
        self._num_ctx = settings.ollama_num_ctx
        self._max_retries = settings.llm_max_retries
        self._retry_delay = settings.llm_retry_delay
        self._semaphore = asyncio.Semaphore(settings.llm_max_concurrent)

        headers = {"Content-Type": "application/json"}
        if settings.llm_api_key:
            headers["Authorization"] = f"Bearer {settings.llm_api_key}"
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(
                connect=10.0,
                read=settings.llm_timeout,
                write=30.0,
                pool=30.0,
            ),
        )

    @property
    def provider(self) -> str:
        return self._provider

    async def execute_prompt(
        self,
        system_message: str,
        user_message: str,
        *,
        temperature: float = 0.3,
        max_tokens: int = 500,
    ) -> str:
        """Send one system + user message pair and return the raw completion text."""
        messages = [
            {"role": "system", "content": system_message},
            {"role": "user", "content": user_message},
        ]
        if self._provider == "ollama":
            call = lambda: self._ollama_chat(messages, temperature, max_tokens)  # noqa: E731
        elif self._provider == "dashscope":
            call = lambda: self._dashscope_chat(messages, temperature, max_tokens)  # noqa: E731
        else:
            call = lambda: self._openai_chat(messages, temperature, max_tokens)  # noqa: E731

        content = await self._with_retries("chat", call)
        logger.debug("LLM response (first 200 chars): %s", content[:200])
        return content

    @overload
    async def compute_embedding(self, text: str) -> list[float]: ...

    @overload
    async def compute_embedding(self, text: list[str]) -> list[list[float]]: ...

    async def compute_embedding(self, text):
        """Embed one text (returns a vector) or a batch (returns one vector per input)."""
        inputs = [text] if isinstance(text, str) else list(text)
        if not inputs:
            return []
        if self._provider == "ollama":
            call = lambda: self._ollama_embed(inputs)  # noqa: E731
        else:
            call = lambda: self._openai_embed(inputs)  # noqa: E731

        vectors = await self._with_retries("embedding", call)
        if len(vectors) != len(inputs):
            raise TransportError(
                f"embedding count mismatch: sent {len(inputs)}, got {len(vectors)}"
            )
        return vectors[0] if isinstance(text, str) else vectors

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    #  Retry wrapper
    # ------------------------------------------------------------------ #

    async def _with_retries(self, op: str, call: Callable[[], Awaitable[T]]) -> T:
        max_attempts = 1 + self._max_retries

        for attempt in range(1, max_attempts + 1):
            try:
                async with self._semaphore:
                    return await call()
            except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
                if attempt >= max_attempts or not _is_retryable(e):
                    logger.warning("LLM %s call failed after %d attempt(s): %s", op, attempt, e)
                    raise TransportError(f"{op} call failed: {e}") from e
                delay = self._retry_delay * (2 ** (attempt - 1))
                logger.warning(
                    "LLM %s attempt %d/%d failed, retry in %.1fs: %s",
                    op,
                    attempt,
                    max_attempts,
                    delay,
                    e,
                )
                await asyncio.sleep(delay)

        raise TransportError(f"{op} call failed")  # pragma: no cover

    # ------------------------------------------------------------------ #
    #  Providers
    # ------------------------------------------------------------------ #

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post(url, json=payload)
        response.raise_for_status()
        return response.json()

    async def _openai_chat(
        self, messages: list[dict[str, str]], temperature: float, max_tokens: int
    ) -> str:
        data = await self._post(
            f"{self._base_url}/chat/completions",
            {
                "model": self._model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )
        return _completion_text(data["choices"][0]["message"]["content"])

    async def _dashscope_chat(
        self, messages: list[dict[str, str]], temperature: float, max_tokens: int
    ) -> str:
        data = await self._post(
            self._base_url,
            {
                "model": self._model,
                "input": {"messages": messages},
                "parameters": {"temperature": temperature, "max_tokens": max_tokens},
            },
        )
        output = data["output"]
        text = output.get("text") or output["choices"][0]["message"]["content"]
        return _completion_text(text)

    async def _ollama_chat(
        self, messages: list[dict[str, str]], temperature: float, max_tokens: int
    ) -> str:
        payload = {
            "model": self._model,
            "messages": messages,
            "stream": True,
            "options": {
                "num_ctx": self._num_ctx,
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }
        content_parts: list[str] = []
        async with self._client.stream(
            "POST", f"{self._base_url}/api/chat", json=payload
        ) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                try:
                    chunk = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Failed to parse streaming chunk: %s", line[:100])
                    continue
                if "message" in chunk and "content" in chunk["message"]:
                    content_parts.append(chunk["message"]["content"])
        return "".join(content_parts).strip()

    async def _openai_embed(self, inputs: list[str]) -> list[list[float]]:
        data = await self._post(
            f"{self._embedding_base_url}/embeddings",
            {"model": self._embedding_model, "input": inputs},
        )
        items = sorted(data["data"], key=lambda item: item.get("index", 0))
        return [item["embedding"] for item in items]

    async def _ollama_embed(self, inputs: list[str]) -> list[list[float]]:
        data = await self._post(
            f"{self._base_url}/api/embed",
            {"model": self._embedding_model, "input": inputs},
        )
        return data["embeddings"]

    async def is_reachable(self) -> bool:
        """Cheap health probe used by the /health route."""
        url = (
            f"{self._base_url}/api/tags"
            if self._provider == "ollama"
            else f"{self._embedding_base_url}/models"
        )
        try:
            response = await self._client.get(url, timeout=httpx.Timeout(5.0))
            return response.status_code == 200
        except httpx.HTTPError:
            return False
