from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import HarmBlockThreshold, HarmCategory

from .config import Settings
from .errors import ParseError, UpstreamError, UpstreamTimeout

logger = logging.getLogger("stock_chat.llm")

DEFAULT_SAFETY_SETTINGS = [
    {"category": HarmCategory.HARM_CATEGORY_HARASSMENT, "threshold": HarmBlockThreshold.BLOCK_ONLY_HIGH},
    {"category": HarmCategory.HARM_CATEGORY_HATE_SPEECH, "threshold": HarmBlockThreshold.BLOCK_ONLY_HIGH},
    {"category": HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT, "threshold": HarmBlockThreshold.BLOCK_ONLY_HIGH},
    {"category": HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT, "threshold": HarmBlockThreshold.BLOCK_ONLY_HIGH},
]

_UNAVAILABLE_ERRORS = (
    google_exceptions.DeadlineExceeded,
    google_exceptions.ServiceUnavailable,
)


class GeminiClient:
    """Thin async wrapper around the Gemini SDK with model caching and safety settings."""

    provider = "gemini"

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK and initialize the model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures the SDK API key and caches model instances.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ValueError if the API key or model name is missing.
        If Removed: The hosted provider option disappears; Ollama keeps working.
        Testing Notes: Validate missing key raises ValueError.
        """
        # Configure API key and seed the default model cache.
        self._settings = settings
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required when LLM_PROVIDER=gemini")
        genai.configure(api_key=settings.gemini_api_key)
        self.url = settings.backend_url
        self.model = normalize_model_name(settings.gemini_model)
        if not self.model:
            raise ValueError("Gemini model name is required")
        self._models: Dict[str, genai.GenerativeModel] = {self.model: genai.GenerativeModel(self.model)}

    async def generate(self, prompt: str) -> str:
        """Purpose: Generate a single text response from a prompt string.
        Inputs/Outputs: Input is the prompt; output is the stripped response text.
        Side Effects / State: One remote call through the SDK.
        Dependencies: Uses GenerativeModel.generate_content_async.
        Failure Modes: Deadline/unavailable errors raise UpstreamTimeout; any other
            API error raises UpstreamError. A blocked or empty reply raises ParseError.
        If Removed: LLM-assisted mode cannot use Gemini.
        Testing Notes: Patch the cached model with a stub exposing generate_content_async.
        """
        # The orchestrator also wraps this call in its own deadline.
        try:
            response = await self._models[self.model].generate_content_async(
                prompt,
                generation_config={
                    "temperature": self._settings.llm_temperature,
                    "response_mime_type": "application/json",
                },
                safety_settings=DEFAULT_SAFETY_SETTINGS,
                request_options={"timeout": self._settings.llm_timeout},
            )
        except _UNAVAILABLE_ERRORS as exc:
            logger.warning("gemini_unavailable model=%s error=%s", self.model, exc)
            raise UpstreamTimeout(detail=str(exc)) from exc
        except google_exceptions.GoogleAPICallError as exc:
            logger.error("gemini_api_error model=%s error=%s", self.model, exc)
            raise UpstreamError(detail=str(exc), url=self.url, status=getattr(exc, "code", None)) from exc
        # .text raises ValueError when the reply was blocked or has no candidates.
        try:
            text: Optional[str] = response.text
        except ValueError as exc:
            feedback = getattr(response, "prompt_feedback", None)
            logger.warning("gemini_unusable_reply model=%s feedback=%s", self.model, feedback)
            raise ParseError(detail=str(exc)) from exc
        return (text or "").strip()

    async def list_models(self) -> List[str]:
        """Return generation-capable model names visible to the API key."""
        try:
            models = await asyncio.to_thread(lambda: list(genai.list_models()))
        except _UNAVAILABLE_ERRORS as exc:
            raise UpstreamTimeout(detail=str(exc)) from exc
        except google_exceptions.GoogleAPICallError as exc:
            raise UpstreamError(detail=str(exc), url=self.url, status=getattr(exc, "code", None)) from exc
        return [
            normalize_model_name(model.name)
            for model in models
            if "generateContent" in (getattr(model, "supported_generation_methods", None) or [])
        ]


def normalize_model_name(name: Optional[str]) -> str:
    """Purpose: Normalize model names by stripping prefix and whitespace.
    Inputs/Outputs: Input is a model name string; output is normalized name.
    Side Effects / State: None.
    Dependencies: None; used by GeminiClient and the health check.
    Failure Modes: Returns empty string for falsy input.
    If Removed: Model caching and availability checks compare mismatched names.
    Testing Notes: Ensure "models/foo" becomes "foo" and whitespace is trimmed.
    """
    # Strip "models/" prefix and whitespace.
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
