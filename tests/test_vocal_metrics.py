from __future__ import annotations

import pytest

from models.session_recording import SessionRecording, TranscriptEntry
from services.errors import NoContentError
from services.vocal_metrics import compute_vocal_analysis, find_fillers


def _recording(*entries: TranscriptEntry) -> SessionRecording:
    return SessionRecording(owner_id="user-1", interview_id="int-1", transcript=list(entries))


def test_find_fillers_matches_phrases_and_words() -> None:
    assert find_fillers("Um, I mean, it was like really basically fine") == ["um", "i mean", "like", "basically"]


def test_metrics_from_user_lines() -> None:
    recording = _recording(
        TranscriptEntry(speaker="ai", text="Tell me about yourself.", offset_ms=0),
        TranscriptEntry(
            speaker="user",
            text="Um, I lead the robotics team. We build robots.",
            offset_ms=1000,
            duration_ms=6000,
            confidence=0.9,
        ),
        TranscriptEntry(speaker="ai", text="Why?", offset_ms=8000),
        TranscriptEntry(
            speaker="user",
            text="Because I like solving problems...",
            offset_ms=12000,
            duration_ms=4000,
            confidence=0.7,
        ),
    )

    analysis = compute_vocal_analysis(recording)

    assert analysis.metrics.total_words == 14
    assert analysis.metrics.total_speaking_ms == 10000
    assert analysis.metrics.sentence_count == 3
    assert analysis.speech_patterns.filler_count == 2
    assert analysis.speech_patterns.filler_words == ["like", "um"]
    assert analysis.speech_patterns.pace == pytest.approx(84.0)
    # gap between 7000ms (end of first answer) and 12000ms
    assert analysis.speech_patterns.long_pauses == 1
    assert analysis.speech_patterns.average_pause_ms == 5000
    assert analysis.speech_patterns.trailing_off == 1
    assert analysis.tone.clarity == pytest.approx(0.8)
    assert 0 <= analysis.overall_score <= 100


def test_interruption_counted_when_ai_speaks_over_user() -> None:
    recording = _recording(
        TranscriptEntry(speaker="user", text="I was saying that", offset_ms=0, duration_ms=5000),
        TranscriptEntry(speaker="ai", text="Sorry, go on", offset_ms=2000),
    )
    assert compute_vocal_analysis(recording).speech_patterns.interruptions == 1


def test_requires_user_speech() -> None:
    with pytest.raises(NoContentError):
        compute_vocal_analysis(_recording(TranscriptEntry(speaker="ai", text="Hello?", offset_ms=0)))
