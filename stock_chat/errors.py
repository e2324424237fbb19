from __future__ import annotations

from typing import Any, Dict, Optional


class StockChatError(Exception):
    """Base error carrying the HTTP status and the envelope shown to the caller."""

    status_code = 500
    public_message = "Error interno del servidor"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.detail = detail

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.detail:
            payload["detalle"] = self.detail
        return payload


class ValidationError(StockChatError):
    """Required request input is missing or malformed."""

    status_code = 400
    public_message = "El mensaje es requerido"


class UpstreamTimeout(StockChatError):
    """The LLM call missed its deadline or the backend was unreachable.

    Always recovered by the orchestrator through the rule-based path.
    """

    status_code = 504
    public_message = "El modelo no respondió a tiempo"


class UpstreamError(StockChatError):
    """The LLM backend answered with a non-success status."""

    status_code = 503
    public_message = "El servicio de IA no está disponible"

    def __init__(
        self,
        message: Optional[str] = None,
        detail: Optional[str] = None,
        url: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message, detail)
        self.url = url
        self.status = status

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.url:
            payload["url"] = self.url
        return payload


class ParseError(StockChatError):
    """The LLM output held no usable JSON object."""

    status_code = 502
    public_message = "No se pudo interpretar la respuesta del modelo"


class InternalError(StockChatError):
    """Any other unexpected failure."""
