from __future__ import annotations

import asyncio
from typing import List, Optional


class StubClient:
    """In-memory completion client; records prompts and replays a canned reply."""

    provider = "ollama"

    def __init__(
        self,
        reply: str = "",
        delay: float = 0.0,
        error: Optional[Exception] = None,
        models: Optional[List[str]] = None,
        models_error: Optional[Exception] = None,
    ) -> None:
        self.url = "http://ollama.test:11434"
        self.model = "llama3.2"
        self.reply = reply
        self.delay = delay
        self.error = error
        self.models = models if models is not None else ["llama3.2:latest"]
        self.models_error = models_error
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply

    async def list_models(self) -> List[str]:
        if self.models_error is not None:
            raise self.models_error
        return list(self.models)
