from __future__ import annotations

import pytest

from agents.transcriber import MAX_AUDIO_BYTES, Transcriber, detect_audio_format, normalize_transcription_response
from services.errors import InvalidInputError


class FakeLLM:
    def __init__(self, raw: dict) -> None:
        self.raw = raw
        self.calls: list[dict] = []

    async def transcribe(self, audio, filename, model, content_type="application/octet-stream", language=None):
        self.calls.append(
            {"filename": filename, "model": model, "content_type": content_type, "language": language}
        )
        return self.raw


WAV = b"RIFF\x24\x00\x00\x00WAVEfmt "
M4A = b"\x00\x00\x00\x20ftypM4A "


def test_detects_format_from_signature() -> None:
    assert detect_audio_format(WAV) == ("wav", "audio/wav")
    assert detect_audio_format(b"OggS\x00\x02") == ("ogg", "audio/ogg")
    assert detect_audio_format(b"ID3\x04\x00") == ("mp3", "audio/mpeg")
    assert detect_audio_format(M4A) == ("m4a", "audio/mp4")


def test_mime_hint_must_match_payload() -> None:
    assert detect_audio_format(b"\x1a\x45\xdf\xa3rest", "audio/webm;codecs=opus") == ("webm", "audio/webm")
    with pytest.raises(InvalidInputError):
        detect_audio_format(WAV, "audio/ogg")
    with pytest.raises(InvalidInputError):
        detect_audio_format(WAV, "video/mp4")


def test_rejects_empty_oversized_and_unknown_audio() -> None:
    with pytest.raises(InvalidInputError):
        detect_audio_format(b"")
    with pytest.raises(InvalidInputError):
        detect_audio_format(b"RIFF" + b"\x00" * MAX_AUDIO_BYTES)
    with pytest.raises(InvalidInputError):
        detect_audio_format(b"plain text, not audio")


def test_normalizes_segments_and_usage_duration() -> None:
    raw = {
        "text": "",
        "segments": [
            {"start": "0.0", "end": 1.5, "text": " Hello ", "score": 0.9, "speaker_id": " spk1 "},
            {"start": 1.5, "end": "bad", "text": "world", "score": "x"},
            "skip me",
        ],
        "audio_language": "en",
        "usage": {"prompt_audio_seconds": 3},
    }

    result = normalize_transcription_response(raw)

    assert result.text == "Hello world"
    assert result.language == "en"
    assert result.duration_seconds == 3.0
    assert result.duration_ms == 3000
    assert [s.index for s in result.segments] == [0, 1]
    assert result.segments[0].speaker_id == "spk1"
    assert result.segments[1].end == 1.5
    assert result.segments[1].score is None
    assert result.average_confidence == pytest.approx(0.9)


def test_normalize_without_segments() -> None:
    result = normalize_transcription_response({"text": "  Just text  "})
    assert result.text == "Just text"
    assert result.segments == []
    assert result.duration_ms is None
    assert result.average_confidence is None


@pytest.mark.asyncio
async def test_transcribe_audio_names_upload_by_format() -> None:
    llm = FakeLLM({"text": "I want to study law.", "duration": 2.2})
    transcriber = Transcriber(llm, model="voxtral-small-latest", language="en")

    result = await transcriber.transcribe_audio(WAV, "audio/wav")

    assert result.text == "I want to study law."
    assert result.duration_ms == 2200
    assert llm.calls == [
        {"filename": "chunk.wav", "model": "voxtral-small-latest", "content_type": "audio/wav", "language": "en"}
    ]


@pytest.mark.asyncio
async def test_invalid_audio_never_reaches_the_service() -> None:
    llm = FakeLLM({"text": "unused"})
    with pytest.raises(InvalidInputError):
        await Transcriber(llm).transcribe_audio(b"not audio")
    assert llm.calls == []
