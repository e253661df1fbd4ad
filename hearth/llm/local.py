"""Streaming client for a local OpenAI-compatible inference server.

llama.cpp's ``llama-server`` and Ollama both expose
``/v1/chat/completions`` and stream replies as server-sent events. The
server runs on the same machine; nothing leaves the device.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from hearth.llm.engine import GenerationParams, InferenceError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

_DONE = "[DONE]"


def _parse_event(line: str) -> str | None:
    """Return the content delta carried by one SSE line, if any.

    Raises:
        InferenceError: On an error payload or undecodable JSON.
    """
    if not line.startswith("data:"):
        return None
    data = line[len("data:") :].strip()
    if not data or data == _DONE:
        return None
    try:
        payload: dict[str, Any] = json.loads(data)
    except json.JSONDecodeError as exc:
        raise InferenceError(f"Malformed stream event: {data[:80]}") from exc
    if "error" in payload:
        error = payload["error"]
        message = error.get("message") if isinstance(error, dict) else error
        raise InferenceError(str(message))
    choices = payload.get("choices") or []
    if not choices:
        return None
    return (choices[0].get("delta") or {}).get("content") or None


class LocalServerEngine:
    """Inference engine backed by a local OpenAI-compatible HTTP server."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 120.0,
        default_model: str = "local",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = base_url.rstrip("/") + "/chat/completions"
        self._timeout = timeout
        self._default_model = default_model
        self._client = client

    async def stream(
        self,
        messages: list[dict[str, str]],
        params: GenerationParams,
        *,
        model: str | None = None,
    ) -> AsyncIterator[str]:
        body = {
            "model": model or self._default_model,
            "messages": messages,
            "stream": True,
            "temperature": params.temperature,
            "top_p": params.top_p,
            "max_tokens": params.max_tokens,
        }
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            async with client.stream("POST", self._url, json=body) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise InferenceError(
                        f"Inference server returned {response.status_code}: "
                        f"{response.text[:200]}"
                    )
                async for line in response.aiter_lines():
                    if line.strip() == f"data: {_DONE}":
                        break
                    fragment = _parse_event(line)
                    if fragment:
                        yield fragment
        except httpx.TimeoutException as exc:
            raise InferenceError("Inference server timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("Inference request failed: %s", exc)
            raise InferenceError(f"Inference server unavailable: {exc}") from exc
        finally:
            if self._client is None:
                await client.aclose()
