"""LLM interpreter adapter.

Builds the instruction prompt from the request snapshot and issues exactly one
deadline-bound request to the configured completion backend. Timeouts,
transport failures and unreadable replies yield ``None`` so the caller falls
back to the rule-based action; there are no retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Protocol

from .config import Settings
from .errors import ParseError, UpstreamError, UpstreamTimeout
from .gemini_client import GeminiClient, normalize_model_name
from .models import ACCIONES, HealthResponse
from .ollama_client import OllamaClient
from .prompt_loader import load_prompt, render_prompt
from .snapshot import InventorySnapshot
from .utils import format_quantity

logger = logging.getLogger("stock_chat.llm")

PROMPT_FILE = "stock_interpreter.txt"
HISTORY_LIMIT = 6

ACTION_DESCRIPTIONS = {
    "conversacion": "responder, saludar o pedir datos que faltan",
    "consulta_stock": "informar el stock de un producto",
    "listar_productos": "listar los productos del inventario",
    "listar_pedidos": "listar los pedidos a proveedores",
    "stock_bajo": "listar productos por debajo del mínimo",
    "ayuda": "explicar qué puede hacer el asistente",
    "entrada": "sumar stock a un producto (requiere confirmación)",
    "salida": "restar stock de un producto (requiere confirmación)",
    "crear_producto": "crear un producto nuevo (requiere confirmación)",
}


class CompletionClient(Protocol):
    provider: str
    url: str
    model: str

    async def generate(self, prompt: str) -> str: ...

    async def list_models(self) -> List[str]: ...


def create_llm_client(settings: Settings) -> CompletionClient:
    """Instantiate the client for the configured provider."""
    if settings.llm_provider == "gemini":
        return GeminiClient(settings)
    return OllamaClient(settings)


def build_interpreter_prompt(mensaje: str, snapshot: InventorySnapshot, settings: Settings) -> str:
    """Purpose: Render the instruction prompt for one message.
    Inputs/Outputs: Inputs are the user message, the request snapshot and Settings;
        output is the full prompt text.
    Side Effects / State: Reads (and caches) the prompt template file.
    Dependencies: load_prompt/render_prompt and the snapshot helpers.
    Failure Modes: A missing template raises FileNotFoundError.
    If Removed: The model gets no catalog, no action list and no output contract.
    Testing Notes: At most ``prompt_catalog_limit`` products are listed; ids appear.
    """
    # Only the first N products go in; the totals still describe the whole catalog.
    limit = settings.prompt_catalog_limit
    lines = [
        f"- {p.nombre} (id: {p.id}, stock: {format_quantity(snapshot.stock_of(p))} {snapshot.unit_of(p)})"
        for p in snapshot.productos[:limit]
    ]
    if len(snapshot.productos) > limit:
        lines.append(f"- ... y {len(snapshot.productos) - limit} productos más")
    contexto = snapshot.context()
    totales = (
        f"Total de productos: {contexto.totalProductos}\n"
        f"Productos con stock bajo: {contexto.productosStockBajo}\n"
        f"Pedidos: {len(snapshot.pedidos)}"
    )
    acciones = "\n".join(f"- {accion}: {ACTION_DESCRIPTIONS[accion]}" for accion in ACCIONES)
    historial = "\n".join(
        f"{entry.rol}: {entry.contenido}" for entry in snapshot.historial[-HISTORY_LIMIT:] if entry.contenido
    )
    template = load_prompt(settings.prompts_dir / PROMPT_FILE)
    return render_prompt(
        template,
        {
            "EMPRESA": snapshot.nombre_empresa or "este negocio",
            "CATALOGO": "\n".join(lines) or "(sin productos cargados)",
            "TOTALES": totales,
            "ACCIONES": acciones,
            "HISTORIAL": historial or "(sin mensajes previos)",
            "MESSAGE": mensaje,
        },
    )


class LLMInterpreter:
    """One bounded, cancellable completion request per message."""

    def __init__(self, settings: Settings, client: CompletionClient) -> None:
        self._settings = settings
        self._client = client

    @property
    def provider(self) -> str:
        return self._client.provider

    async def interpret(self, mensaje: str, snapshot: InventorySnapshot) -> Optional[str]:
        """Purpose: Ask the model to interpret a message and return its raw text.
        Inputs/Outputs: Inputs are the message and snapshot; output is the raw model
            text, or None on timeout, transport failure or an unreadable reply.
        Side Effects / State: One outbound request, cancelled when the deadline expires.
        Dependencies: asyncio.wait_for over the client's generate coroutine.
        Failure Modes: UpstreamError (backend answered with an error status)
            propagates to the caller; timeouts and unreadable replies are logged
            and swallowed.
        If Removed: LLM-assisted mode has no input.
        Testing Notes: A slow stub client returns None once the deadline passes.
        """
        # wait_for cancels the in-flight request when the deadline expires.
        prompt = build_interpreter_prompt(mensaje, snapshot, self._settings)
        try:
            raw = await asyncio.wait_for(self._client.generate(prompt), timeout=self._settings.llm_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "llm_timeout provider=%s timeout=%.1fs", self._client.provider, self._settings.llm_timeout
            )
            return None
        except UpstreamTimeout as exc:
            logger.warning("llm_unreachable provider=%s detail=%s", self._client.provider, exc.detail)
            return None
        except ParseError as exc:
            logger.warning("llm_unparseable provider=%s detail=%s", self._client.provider, exc.detail)
            return None
        logger.debug("llm_raw provider=%s raw=%r", self._client.provider, raw[:500])
        return raw

    async def health(self) -> HealthResponse:
        """Purpose: Report whether the backend is reachable and the model is pulled.
        Inputs/Outputs: No inputs; output is a HealthResponse.
        Side Effects / State: One listing request bounded by health_timeout.
        Dependencies: The client's list_models.
        Failure Modes: Never raises; every failure becomes status "error".
        If Removed: Callers cannot decide whether to enable LLM-assisted mode.
        Testing Notes: Model "llama3.2" is available when tags list "llama3.2:latest".
        """
        # The configured model may be listed with or without its ":tag" suffix.
        modelo = self._client.model
        try:
            modelos = await asyncio.wait_for(self._client.list_models(), timeout=self._settings.health_timeout)
        except asyncio.TimeoutError:
            return HealthResponse(
                status="error",
                url=self._client.url,
                modeloConfigurado=modelo,
                message="El servicio de IA no respondió a tiempo",
            )
        except (UpstreamTimeout, UpstreamError) as exc:
            return HealthResponse(
                status="error",
                url=self._client.url,
                modeloConfigurado=modelo,
                message=f"No se pudo conectar con el servicio de IA: {exc.detail or exc.message}",
            )
        except Exception:
            logger.exception("health_check_failed provider=%s", self._client.provider)
            return HealthResponse(
                status="error",
                url=self._client.url,
                modeloConfigurado=modelo,
                message="No se pudo verificar el servicio de IA",
            )
        disponible = _model_available(modelo, modelos)
        return HealthResponse(
            status="ok",
            url=self._client.url,
            modeloConfigurado=modelo,
            modeloDisponible=disponible,
            modelosDisponibles=modelos,
            message="Modelo disponible" if disponible else f"El modelo {modelo} no está descargado",
        )


def _model_available(modelo: str, modelos: List[str]) -> bool:
    wanted = normalize_model_name(modelo)
    for name in modelos:
        candidate = normalize_model_name(name)
        if candidate == wanted:
            return True
        if ":" not in wanted or ":" not in candidate:
            if candidate.split(":", 1)[0] == wanted.split(":", 1)[0]:
                return True
    return False
