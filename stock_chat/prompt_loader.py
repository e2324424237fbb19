from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Mapping


@lru_cache(maxsize=16)
def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt template as UTF-8 text and strip BOM if present.
    Inputs/Outputs: Input is a Path to the template; output is the decoded string.
    Side Effects / State: Caches the text per path for the life of the process.
    Dependencies: Uses Path.read_text/read_bytes; used by the LLM interpreter.
    Failure Modes: UnicodeDecodeError triggers a tolerant decode that drops invalid
        bytes; a missing file raises FileNotFoundError.
    If Removed: The LLM-assisted path cannot build its instruction prompt.
    Testing Notes: Validate BOM-stripping and fallback decoding on non-UTF8 files.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        return prompt_path.read_text(encoding="utf-8").lstrip("\ufeff")
    except UnicodeDecodeError:
        raw = prompt_path.read_bytes()
        return raw.decode("utf-8", errors="ignore").lstrip("\ufeff")


def render_prompt(template: str, values: Mapping[str, str]) -> str:
    """Replace ``<<KEY>>`` markers; JSON braces in the template are left alone."""
    rendered = template
    for key, value in values.items():
        rendered = rendered.replace(f"<<{key}>>", value)
    return rendered
