from __future__ import annotations

import logging
from typing import Optional

from .config import Settings
from .errors import ParseError, ValidationError
from .interpreter import CompletionClient, LLMInterpreter, create_llm_client
from .models import ChatRequest, ChatResponse, HealthResponse
from .reconciler import reconcile
from .rule_engine import build_rule_based_action
from .sanitizer import sanitize_llm_response
from .snapshot import InventorySnapshot

logger = logging.getLogger("stock_chat.orchestrator")

FALLBACK_MODE = "fallback"


class StockChatOrchestrator:
    """Entry point of the engine: one request in, one canonical action out."""

    def __init__(self, settings: Settings, client: Optional[CompletionClient] = None) -> None:
        """Purpose: Wire the rule-based path and, when enabled, the LLM path.
        Inputs/Outputs: Inputs are Settings and an optional completion client; no return.
        Side Effects / State: Builds the provider client now when LLM mode is on;
            otherwise on the first health check. Holds no per-request state.
        Dependencies: create_llm_client, LLMInterpreter.
        Failure Modes: With LLM mode on, GeminiClient raises ValueError when its API
            key is missing. With LLM mode off the same error is reported by health().
        If Removed: The API has nothing to call.
        Testing Notes: Inject a stub client to drive the LLM path without a network.
        """
        self._settings = settings
        self._interpreter: Optional[LLMInterpreter] = None
        if client is not None:
            self._interpreter = LLMInterpreter(settings, client)
        elif settings.llm_enabled:
            self._interpreter = LLMInterpreter(settings, create_llm_client(settings))

    @property
    def llm_enabled(self) -> bool:
        return self._settings.llm_enabled

    def _get_interpreter(self) -> LLMInterpreter:
        if self._interpreter is None:
            self._interpreter = LLMInterpreter(self._settings, create_llm_client(self._settings))
        return self._interpreter

    async def handle(self, request: ChatRequest) -> ChatResponse:
        """Purpose: Interpret one message and return the final action plus the mode used.
        Inputs/Outputs: Input is a ChatRequest; output is a ChatResponse.
        Side Effects / State: At most one outbound LLM request; logs the decision.
        Dependencies: build_rule_based_action always; LLMInterpreter, sanitizer and
            reconcile when LLM mode is enabled.
        Failure Modes: A missing or blank mensaje raises ValidationError. UpstreamError
            from the backend propagates. Timeouts and unparseable model output fall back
            to the rule-based action with modo "fallback".
        If Removed: No mode selection and no timeout fallback.
        Testing Notes: Fast path never calls the client; a stub that sleeps past the
            deadline yields modo "fallback".
        """
        # The rule-based action is computed first: it is the fast-path answer, the
        # fallback, and the cross-check for reconciliation.
        mensaje = (request.mensaje or "").strip()
        if not mensaje:
            raise ValidationError()
        snapshot = InventorySnapshot.from_request(request)
        contexto = snapshot.context()
        rule_action = build_rule_based_action(mensaje, snapshot)

        if not self._settings.llm_enabled:
            logger.info("mode=%s accion=%s confianza=%.2f", FALLBACK_MODE, rule_action.accion, rule_action.confianza)
            return ChatResponse(accion=rule_action, modo=FALLBACK_MODE, contexto=contexto)

        interpreter = self._get_interpreter()
        raw = await interpreter.interpret(mensaje, snapshot)
        if raw is None:
            logger.info("mode=%s reason=no_reply accion=%s", FALLBACK_MODE, rule_action.accion)
            return ChatResponse(accion=rule_action, modo=FALLBACK_MODE, contexto=contexto)
        try:
            llm_action = sanitize_llm_response(raw)
        except ParseError:
            logger.info("mode=%s reason=parse accion=%s", FALLBACK_MODE, rule_action.accion)
            return ChatResponse(accion=rule_action, modo=FALLBACK_MODE, contexto=contexto)

        final = reconcile(
            llm_action,
            rule_action,
            mensaje,
            snapshot,
            threshold=self._settings.rule_precedence_threshold,
        )
        modo = interpreter.provider
        logger.info(
            "mode=%s accion=%s rule_accion=%s confianza=%.2f",
            modo,
            final.accion,
            rule_action.accion,
            final.confianza,
        )
        return ChatResponse(accion=final, rawResponse=raw, modo=modo, contexto=contexto)

    async def health(self) -> HealthResponse:
        """Backend status; a provider that cannot be configured reports status "error"."""
        try:
            interpreter = self._get_interpreter()
        except ValueError as exc:
            logger.warning("llm_client_unavailable provider=%s error=%s", self._settings.llm_provider, exc)
            return HealthResponse(
                status="error",
                url=self._settings.backend_url,
                modeloConfigurado=self._settings.model_name,
                message=f"Configuración de IA incompleta: {exc}",
            )
        return await interpreter.health()
