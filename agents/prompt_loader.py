from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from string import Template


PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"


@lru_cache(maxsize=32)
def load_prompt(filename: str, language: str = "en") -> str:
    """Load a prompt file, resolving language-specific version first.

    Lookup order:
      1. prompts/{language}/{filename}
      2. prompts/{filename}
    """
    lang_path = PROMPTS_DIR / language / filename
    if lang_path.exists():
        return lang_path.read_text(encoding="utf-8").strip()

    root_path = PROMPTS_DIR / filename
    if root_path.exists():
        return root_path.read_text(encoding="utf-8").strip()

    raise FileNotFoundError(
        f"Prompt file not found: tried {lang_path} and {root_path}"
    )


def render_prompt(filename: str, language: str = "en", **values: object) -> str:
    """Fill ``$name`` placeholders; unknown placeholders are left as-is."""
    return Template(load_prompt(filename, language)).safe_substitute(
        {key: str(value) for key, value in values.items()}
    )
