from __future__ import annotations

import logging
import math

from models.artifact import Artifact
from services.repository import Repository


logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
TRUNCATION_NOTICE = "...\n\n[Content truncated to fit token limit]"


def estimate_token_count(content: str) -> int:
    if not content:
        return 0
    return math.ceil(len(content) / CHARS_PER_TOKEN)


def _with_text(artifacts: list[Artifact]) -> list[Artifact]:
    return [a for a in artifacts if a.extracted_text and a.extracted_text.strip()]


def combine_content(artifacts: list[Artifact]) -> str:
    return "\n\n".join(f"=== {a.original_name} ===\n{a.extracted_text}" for a in _with_text(artifacts))


async def get_user_uploaded_content(repository: Repository[Artifact], owner_id: str) -> str | None:
    artifacts = await repository.find_owned(owner_id, lambda a: a.processing_status == "completed")
    artifacts.sort(key=lambda a: a.uploaded_at, reverse=True)
    combined = combine_content(artifacts)
    return combined or None


def select_relevant_content(artifacts: list[Artifact], context: str = "", max_tokens: int = 2000) -> str | None:
    """Combine extracted text and cut it down to ``max_tokens``.

    ``context`` is accepted for relevance scoring; every artifact with text
    is currently included, newest first as given.
    """
    combined = combine_content(artifacts)
    if not combined.strip():
        return None

    if estimate_token_count(combined) <= max_tokens:
        return combined

    max_chars = max_tokens * CHARS_PER_TOKEN
    logger.info("Truncating uploaded content from %d to %d characters", len(combined), max_chars)
    return combined[:max_chars] + TRUNCATION_NOTICE


def format_content_for_prompt(artifacts: list[Artifact], include_file_names: bool = True) -> str:
    # profile documents first, then most recent
    ordered = sorted(
        _with_text(artifacts),
        key=lambda a: ("user_info" not in a.original_name.lower(), -a.uploaded_at.timestamp()),
    )
    blocks: list[str] = []
    for artifact in ordered:
        header = ""
        if include_file_names:
            header = (
                f"**Document: {artifact.original_name}**\n"
                f"Type: {artifact.mime_type}\n"
                f"Uploaded: {artifact.uploaded_at.date().isoformat()}\n\n"
            )
        blocks.append(header + artifact.extracted_text.strip())
    return "\n\n---\n\n".join(blocks)
