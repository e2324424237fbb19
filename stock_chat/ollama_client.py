from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from .config import Settings
from .errors import ParseError, UpstreamError, UpstreamTimeout

logger = logging.getLogger("stock_chat.llm")


class OllamaClient:
    """Async client for a local Ollama server (``/api/generate`` and ``/api/tags``)."""

    provider = "ollama"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        """Purpose: Keep connection settings for one Ollama backend.
        Inputs/Outputs: Input is Settings and an optional httpx transport; no return.
        Side Effects / State: None; a fresh AsyncClient is opened per call.
        Dependencies: httpx.
        Failure Modes: None at init.
        If Removed: The default LLM provider is unavailable.
        Testing Notes: Pass httpx.MockTransport to exercise every branch offline.
        """
        self._settings = settings
        self._transport = transport
        self.url = settings.ollama_url
        self.model = settings.ollama_model

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.url, timeout=timeout, transport=self._transport)

    async def generate(self, prompt: str) -> str:
        """Purpose: Request one non-streamed completion for a prompt.
        Inputs/Outputs: Input is the prompt text; output is the raw model text.
        Side Effects / State: One HTTP POST to the backend.
        Dependencies: httpx.AsyncClient; the caller bounds the call with a deadline.
        Failure Modes: Transport errors and httpx timeouts raise UpstreamTimeout;
            non-2xx responses raise UpstreamError with the body; a non-JSON envelope
            raises ParseError.
        If Removed: LLM-assisted mode cannot reach Ollama.
        Testing Notes: 200 with {"response": "..."}, 500 with an error body, and a
            transport exception.
        """
        # Non-streamed JSON mode keeps the reply in a single "response" field.
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {"temperature": self._settings.llm_temperature},
        }
        try:
            async with self._client(self._settings.llm_timeout) as client:
                response = await client.post("/api/generate", json=payload)
        except httpx.TransportError as exc:
            logger.warning("ollama_transport_error url=%s error=%s", self.url, exc)
            raise UpstreamTimeout(detail=str(exc)) from exc
        if response.status_code >= 400:
            logger.error("ollama_http_error url=%s status=%s", self.url, response.status_code)
            raise UpstreamError(
                detail=response.text[:500],
                url=self.url,
                status=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ParseError(detail=response.text[:500]) from exc
        if not isinstance(data, dict):
            raise ParseError(detail=response.text[:500])
        return str(data.get("response") or "").strip()

    async def list_models(self) -> List[str]:
        """Return the model names the server has pulled."""
        try:
            async with self._client(self._settings.health_timeout) as client:
                response = await client.get("/api/tags")
        except httpx.TransportError as exc:
            raise UpstreamTimeout(detail=str(exc)) from exc
        if response.status_code >= 400:
            raise UpstreamError(detail=response.text[:500], url=self.url, status=response.status_code)
        try:
            data = response.json()
        except ValueError as exc:
            raise ParseError(detail=response.text[:500]) from exc
        models = data.get("models") if isinstance(data, dict) else None
        if not isinstance(models, list):
            return []
        return [str(model.get("name")) for model in models if isinstance(model, dict) and model.get("name")]
