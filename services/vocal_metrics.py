from __future__ import annotations

import re

from models.session_recording import (
    SessionRecording,
    SpeechMetrics,
    SpeechPatterns,
    ToneMetrics,
    TranscriptEntry,
    VocalAnalysis,
)
from services.errors import NoContentError


FILLER_PHRASES = (
    "you know",
    "i mean",
    "sort of",
    "kind of",
    "um",
    "uh",
    "er",
    "ah",
    "like",
    "basically",
    "actually",
    "literally",
)
LONG_PAUSE_MS = 3000
ESTIMATED_MS_PER_WORD = 400
IDEAL_WPM = 140

_WORD = re.compile(r"[a-z0-9']+")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_FILLER = re.compile(r"\b(" + "|".join(re.escape(p) for p in FILLER_PHRASES) + r")\b")


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _entry_end(entry: TranscriptEntry) -> int:
    words = len(_WORD.findall(entry.text.lower()))
    return entry.offset_ms + (entry.duration_ms or words * ESTIMATED_MS_PER_WORD)


def find_fillers(text: str) -> list[str]:
    return _FILLER.findall(text.lower())


def compute_vocal_analysis(recording: SessionRecording) -> VocalAnalysis:
    """Speech-pattern analysis derived from the candidate's transcript lines."""
    user_entries = [e for e in recording.transcript if e.speaker == "user"]
    text = " ".join(e.text for e in user_entries).lower()
    words = _WORD.findall(text)
    if not words:
        raise NoContentError("No candidate speech to analyze")

    total_words = len(words)
    unique_words = len(set(words))
    sentences = [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]
    sentence_count = max(1, len(sentences))

    speaking_ms = sum(
        e.duration_ms if e.duration_ms is not None else len(_WORD.findall(e.text.lower())) * ESTIMATED_MS_PER_WORD
        for e in user_entries
    )
    minutes = max(speaking_ms / 60000, 1 / 60)
    pace = total_words / minutes

    fillers = find_fillers(text)
    filler_ratio = len(fillers) / total_words

    pauses = [
        max(0, current.offset_ms - _entry_end(previous))
        for previous, current in zip(user_entries, user_entries[1:])
    ]
    long_pauses = sum(1 for p in pauses if p > LONG_PAUSE_MS)
    trailing_off = sum(1 for e in user_entries if e.text.rstrip().endswith(("...", "-")))

    interruptions = 0
    last_user_end: int | None = None
    for entry in recording.transcript:
        if entry.speaker == "user":
            last_user_end = _entry_end(entry)
        elif entry.speaker == "ai" and last_user_end is not None and entry.offset_ms < last_user_end:
            interruptions += 1

    confidences = [e.confidence for e in user_entries if e.confidence is not None]
    clarity = sum(confidences) / len(confidences) if confidences else _clamp(1 - filler_ratio * 5)
    pace_score = _clamp(1 - abs(pace - IDEAL_WPM) / IDEAL_WPM)
    tone = ToneMetrics(
        confidence=_clamp(1 - filler_ratio * 5 - long_pauses * 0.05),
        clarity=_clamp(clarity),
        enthusiasm=_clamp(unique_words / total_words * 1.5),
        professionalism=_clamp(1 - filler_ratio * 3 - trailing_off * 0.05),
    )
    overall = 100 * (tone.confidence + tone.clarity + tone.professionalism + pace_score) / 4

    return VocalAnalysis(
        overall_score=round(overall, 1),
        tone=tone,
        speech_patterns=SpeechPatterns(
            pace=round(pace, 1),
            average_pause_ms=round(sum(pauses) / len(pauses), 1) if pauses else 0.0,
            filler_words=sorted(set(fillers)),
            filler_count=len(fillers),
            filler_frequency=round(len(fillers) / minutes, 2),
            long_pauses=long_pauses,
            interruptions=interruptions,
            trailing_off=trailing_off,
        ),
        metrics=SpeechMetrics(
            total_speaking_ms=speaking_ms,
            total_words=total_words,
            unique_words=unique_words,
            sentence_count=sentence_count,
            average_sentence_length=round(total_words / sentence_count, 1),
        ),
    )
