from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

LLM_PROVIDERS = ("ollama", "gemini")
_TRUE_VALUES = {"1", "true", "yes", "on", "si", "sí"}


@dataclass(frozen=True)
class Settings:
    """Configuration container for the LLM backend, limits, and tunables."""
    llm_enabled: bool = False
    llm_provider: str = "ollama"
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    llm_timeout: float = 10.0
    health_timeout: float = 3.0
    llm_temperature: float = 0.1
    prompt_catalog_limit: int = 10
    rule_precedence_threshold: float = 0.7
    prompts_dir: Path = BASE_DIR / "prompts"

    @property
    def model_name(self) -> str:
        if self.llm_provider == "gemini":
            return self.gemini_model
        return self.ollama_model

    @property
    def backend_url(self) -> str:
        if self.llm_provider == "gemini":
            return "https://generativelanguage.googleapis.com"
        return self.ollama_url


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables.
    Dependencies: Uses os.getenv and BASE_DIR for the prompts directory.
    Failure Modes: Invalid numeric env values raise ValueError; an unknown
        LLM_PROVIDER raises ValueError.
    If Removed: The orchestrator cannot be configured and the app fails at startup.
    Testing Notes: Verify defaults and overrides via monkeypatched environment.
    """
    # Resolve provider first so a typo fails fast instead of silently disabling the LLM.
    provider = os.getenv("LLM_PROVIDER", "ollama").strip().lower() or "ollama"
    if provider not in LLM_PROVIDERS:
        raise ValueError(f"LLM_PROVIDER must be one of {', '.join(LLM_PROVIDERS)}, got {provider!r}")

    return Settings(
        llm_enabled=_env_bool("LLM_ENABLED", False),
        llm_provider=provider,
        ollama_url=os.getenv("OLLAMA_URL", "http://localhost:11434").rstrip("/"),
        ollama_model=os.getenv("OLLAMA_MODEL", "llama3.2"),
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        llm_timeout=float(os.getenv("LLM_TIMEOUT_SECONDS", "10")),
        health_timeout=float(os.getenv("HEALTH_TIMEOUT_SECONDS", "3")),
        llm_temperature=float(os.getenv("LLM_TEMPERATURE", "0.1")),
        prompt_catalog_limit=int(os.getenv("PROMPT_CATALOG_LIMIT", "10")),
        rule_precedence_threshold=float(os.getenv("RULE_PRECEDENCE_THRESHOLD", "0.7")),
    )
