from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import Settings, load_settings
from .errors import InternalError, StockChatError, UpstreamError, ValidationError
from .models import ChatRequest, ChatResponse, HealthResponse
from .orchestrator import StockChatOrchestrator

BASE_DIR = Path(__file__).resolve().parent

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)
else:
    load_dotenv()

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("stock_chat").setLevel(log_level)
logger = logging.getLogger("stock_chat.api")


def _validation_detail(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[StockChatOrchestrator] = None,
) -> FastAPI:
    """Purpose: Build the FastAPI application around one orchestrator.
    Inputs/Outputs: Optional Settings and orchestrator; output is a FastAPI app.
    Side Effects / State: Loads settings from the environment when none are given.
    Dependencies: FastAPI, StockChatOrchestrator and the error hierarchy.
    Failure Modes: Invalid configuration raises ValueError at startup.
    If Removed: The engine has no HTTP surface.
    Testing Notes: Pass an orchestrator with a stub client and use TestClient.
    """
    # Every StockChatError renders the same {error, detalle?, url?} envelope.
    settings = settings or load_settings()
    orchestrator = orchestrator or StockChatOrchestrator(settings)
    app = FastAPI(title="Stock Chat")
    app.state.orchestrator = orchestrator

    @app.exception_handler(StockChatError)
    async def handle_stock_chat_error(request: Request, exc: StockChatError) -> JSONResponse:
        if isinstance(exc, UpstreamError):
            logger.error("upstream_error url=%s status=%s", exc.url, exc.status)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = ValidationError(detail=_validation_detail(exc))
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("internal_error path=%s", request.url.path)
        error = InternalError()
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    @app.post("/api/stock-chat", response_model=ChatResponse, response_model_exclude_none=True)
    async def stock_chat(request: ChatRequest) -> ChatResponse:
        """Interpret one chat message against the caller's inventory snapshot."""
        return await app.state.orchestrator.handle(request)

    @app.get("/api/stock-chat", response_model=HealthResponse, response_model_exclude_none=True)
    async def stock_chat_health() -> HealthResponse:
        """Report LLM backend reachability and model availability."""
        return await app.state.orchestrator.health()

    return app


app = create_app()
