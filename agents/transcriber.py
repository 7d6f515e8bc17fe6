from __future__ import annotations

import logging
from typing import Any

from agents.llm_client import LLMClient
from models.transcription import TranscriptionResult, TranscriptSegment
from services.errors import InvalidInputError


logger = logging.getLogger(__name__)

MAX_AUDIO_BYTES = 25 * 1024 * 1024

AUDIO_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/webm": "webm",
    "audio/mp4": "m4a",
    "audio/m4a": "m4a",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
}

_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    "mp3": (b"\xff\xfb", b"\xff\xf3", b"\xff\xf2", b"ID3"),
    "wav": (b"RIFF",),
    "webm": (b"\x1a\x45\xdf\xa3",),
    "ogg": (b"OggS",),
    "flac": (b"fLaC",),
}


def _base_mime(mime_hint: str | None) -> str | None:
    if not mime_hint:
        return None
    return mime_hint.split(";", 1)[0].strip().lower() or None


def _matches(data: bytes, extension: str) -> bool:
    if extension == "m4a":
        return data[4:8] == b"ftyp"
    return any(data.startswith(sig) for sig in _SIGNATURES[extension])


def detect_audio_format(data: bytes, mime_hint: str | None = None) -> tuple[str, str]:
    """Return ``(extension, mime_type)`` for an audio payload or raise."""
    if not data:
        raise InvalidInputError("Empty or invalid audio buffer")
    if len(data) > MAX_AUDIO_BYTES:
        raise InvalidInputError(
            f"Audio size {len(data) / 1024 / 1024:.2f}MB exceeds maximum limit of 25MB"
        )

    mime = _base_mime(mime_hint)
    if mime is not None:
        extension = AUDIO_EXTENSIONS.get(mime)
        if extension is None:
            raise InvalidInputError(f"Unsupported audio format: {mime}")
        if not _matches(data, extension):
            raise InvalidInputError(f"Invalid or corrupted {extension.upper()} audio")
        return extension, mime

    for mime_type, extension in AUDIO_EXTENSIONS.items():
        if _matches(data, extension):
            return extension, mime_type
    raise InvalidInputError("Could not recognize the audio format")


def normalize_transcription_response(raw: dict[str, Any]) -> TranscriptionResult:
    segments: list[TranscriptSegment] = []
    segments_payload = raw.get("segments")
    if isinstance(segments_payload, list):
        for index, item in enumerate(segments_payload):
            if not isinstance(item, dict):
                continue
            try:
                start = float(item.get("start", 0.0))
            except (TypeError, ValueError):
                start = 0.0
            try:
                end = float(item.get("end", start))
            except (TypeError, ValueError):
                end = start
            try:
                score = float(item["score"]) if item.get("score") is not None else None
            except (TypeError, ValueError):
                score = None

            speaker = item.get("speaker_id")
            segments.append(
                TranscriptSegment(
                    index=index,
                    start=start,
                    end=end,
                    text=str(item.get("text", "")).strip(),
                    speaker_id=None if speaker is None else str(speaker).strip() or None,
                    score=score,
                )
            )

    text = str(raw.get("text", "")).strip()
    if not text and segments:
        text = " ".join(s.text for s in segments if s.text)

    language = str(raw.get("language") or raw.get("audio_language") or "").strip() or None
    duration = raw.get("duration")
    if duration is None and isinstance(raw.get("usage"), dict):
        duration = raw["usage"].get("prompt_audio_seconds")
    try:
        duration_seconds = float(duration) if duration is not None else None
    except (TypeError, ValueError):
        duration_seconds = None

    return TranscriptionResult(
        text=text,
        segments=segments,
        language=language,
        duration_seconds=duration_seconds,
    )


class Transcriber:
    def __init__(self, llm: LLMClient, model: str = "voxtral-mini-latest", language: str | None = None):
        self.llm = llm
        self.model = model
        self.language = language

    async def transcribe_audio(self, data: bytes, mime_hint: str | None = None) -> TranscriptionResult:
        extension, mime_type = detect_audio_format(data, mime_hint)
        raw = await self.llm.transcribe(
            audio=data,
            filename=f"chunk.{extension}",
            model=self.model,
            content_type=mime_type,
            language=self.language,
        )
        result = normalize_transcription_response(raw)
        logger.info(
            "Transcribed %d bytes of %s audio into %d characters", len(data), extension, len(result.text)
        )
        return result
