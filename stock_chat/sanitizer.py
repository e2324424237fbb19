from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .errors import ParseError
from .models import ACCIONES, CanonicalAction, SuggestedCommand
from .utils import coerce_number, safe_json_loads

logger = logging.getLogger("stock_chat.llm")

DEFAULT_CONFIDENCE = 0.5
DEFAULT_MESSAGE = "¿En qué te puedo ayudar?"


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or None
    return None


def _as_accion(value: Any) -> Optional[str]:
    text = _as_text(value)
    if text is None:
        return None
    text = text.lower()
    return text if text in ACCIONES else None


def _as_quantity(value: Any) -> Optional[float]:
    number = coerce_number(value)
    return abs(number) if number is not None else None


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "si", "sí", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return default


def _sanitize_suggestion(data: Any) -> Optional[SuggestedCommand]:
    if not isinstance(data, dict):
        return None
    accion = _as_accion(data.get("accion"))
    if accion is None:
        return None
    return SuggestedCommand(
        accion=accion,
        producto=_as_text(data.get("producto")),
        productoId=_as_text(data.get("productoId")),
        cantidad=_as_quantity(data.get("cantidad")),
        unidad=_as_text(data.get("unidad")),
        stockMinimo=_as_quantity(data.get("stockMinimo")),
    )


def sanitize_payload(data: Dict[str, Any]) -> CanonicalAction:
    """Purpose: Turn an untrusted JSON object into a CanonicalAction.
    Inputs/Outputs: Input is the decoded model object; output is a CanonicalAction.
    Side Effects / State: None.
    Dependencies: Field coercion helpers in this module.
    Failure Modes: Unknown fields are ignored; an unknown accion falls back to
        conversacion; a comandoSugerido with an unknown accion is dropped.
    If Removed: Reconciliation would operate on raw model dicts.
    Testing Notes: Negative cantidad becomes positive at both levels; missing
        confianza is 0.5 and missing requiereConfirmacion is False.
    """
    # Every field is type-checked; nothing is trusted as-is.
    confianza = coerce_number(data.get("confianza"))
    return CanonicalAction(
        accion=_as_accion(data.get("accion")) or "conversacion",
        producto=_as_text(data.get("producto")),
        productoId=_as_text(data.get("productoId")),
        cantidad=_as_quantity(data.get("cantidad")),
        unidad=_as_text(data.get("unidad")),
        stockMinimo=_as_quantity(data.get("stockMinimo")),
        mensaje=_as_text(data.get("mensaje")) or DEFAULT_MESSAGE,
        confianza=DEFAULT_CONFIDENCE if confianza is None else confianza,
        requiereConfirmacion=_as_bool(data.get("requiereConfirmacion"), False),
        comandoSugerido=_sanitize_suggestion(data.get("comandoSugerido")),
    )


def sanitize_llm_response(raw: str) -> CanonicalAction:
    """Purpose: Extract and normalize the action object from raw model text.
    Inputs/Outputs: Input is raw completion text; output is a CanonicalAction.
    Side Effects / State: Logs a warning on failure.
    Dependencies: safe_json_loads (fence stripping + first "{" to last "}") and
        sanitize_payload.
    Failure Modes: Raises ParseError when no JSON object can be extracted; the
        orchestrator recovers by using the rule-based result.
    If Removed: LLM output cannot be consumed.
    Testing Notes: Fenced JSON, JSON with prose around it, and plain prose.
    """
    # Parse failures are recovered by the caller, never shown to the user.
    data = safe_json_loads(raw or "")
    if data is None:
        logger.warning("llm_parse_error raw=%r", (raw or "")[:200])
        raise ParseError(detail=(raw or "")[:500])
    return sanitize_payload(data)
