from __future__ import annotations

import logging
from typing import Any

from agents.llm_client import LLMClient
from agents.prompt_loader import render_prompt
from models.feedback import DetailedScores, FeedbackReport, FeedbackRequest, QuestionFeedback, Recommendation
from services.errors import NoContentError, PermanentRemoteError


logger = logging.getLogger(__name__)

_SCORE_KEYS = {
    "content_relevance": "contentRelevance",
    "communication": "communication",
    "confidence": "confidence",
    "structure": "structure",
    "engagement": "engagement",
}
_VALID_PRIORITIES = {"high", "medium", "low"}


def _pick(payload: dict[str, Any], snake: str, camel: str) -> Any:
    return payload.get(snake, payload.get(camel))


def _as_float(value: Any, default: float, low: float, high: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


def _str_list(value: Any, limit: int = 10) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(x).strip() for x in value if str(x).strip()][:limit]


def _dict_items(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _profile_lines(profile: dict[str, Any]) -> str:
    lines: list[str] = []
    if profile.get("grade"):
        lines.append(f"- Student grade: {profile['grade']}")
    if profile.get("target_colleges"):
        lines.append(f"- Target colleges: {', '.join(profile['target_colleges'])}")
    if profile.get("strengths"):
        lines.append(f"- Known strengths: {', '.join(profile['strengths'])}")
    if profile.get("weaknesses"):
        lines.append(f"- Areas for improvement: {', '.join(profile['weaknesses'])}")
    return "\n".join(lines)


class FeedbackAnalyst:
    def __init__(self, llm: LLMClient, model: str | None = None):
        self.llm = llm
        self.model = model

    async def analyze_transcript(self, request: FeedbackRequest) -> FeedbackReport:
        responses = request.lines_for("user")
        if not responses:
            raise NoContentError("No user responses found in transcript for analysis")
        questions = request.questions or request.lines_for("ai")

        system_prompt = render_prompt(
            "feedback_system.txt",
            interview_type=request.interview_type,
            difficulty=request.difficulty,
            user_major=request.user_major,
            duration_minutes=request.duration_minutes,
            profile_lines=_profile_lines(request.user_profile),
        )
        user_prompt = (
            "INTERVIEW QUESTIONS:\n"
            + "\n\n".join(questions)
            + "\n\nCANDIDATE RESPONSES:\n"
            + "\n\n".join(responses)
            + "\n\nAnalyze this interview and return the feedback JSON."
        )

        payload = await self.llm.chat_json(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.3,
            max_tokens=2000,
            model=self.model,
        )
        report = self._coerce_feedback_report(payload)
        logger.info(
            "Generated feedback for %s %s interview with rating %.1f/10",
            request.user_major,
            request.interview_type,
            report.overall_rating,
        )
        return report

    def _coerce_feedback_report(self, payload: dict[str, Any]) -> FeedbackReport:
        rating = _pick(payload, "overall_rating", "overallRating")
        strengths = payload.get("strengths")
        weaknesses = payload.get("weaknesses")
        if rating is None or not isinstance(strengths, list) or not isinstance(weaknesses, list):
            raise PermanentRemoteError("Incomplete feedback report from AI service")

        scores_payload = _pick(payload, "detailed_scores", "detailedScores")
        if not isinstance(scores_payload, dict):
            scores_payload = {}
        scores = DetailedScores(
            **{
                key: _as_float(_pick(scores_payload, key, camel), 0.0, 0.0, 100.0)
                for key, camel in _SCORE_KEYS.items()
            }
        )

        recommendations: list[Recommendation] = []
        for item in _dict_items(payload.get("recommendations")):
            area = str(item.get("area", "")).strip()
            suggestion = str(item.get("suggestion", "")).strip()
            if not (area and suggestion):
                continue
            priority = str(item.get("priority", "medium")).strip().lower()
            if priority not in _VALID_PRIORITIES:
                priority = "medium"
            recommendations.append(
                Recommendation(
                    area=area[:100],
                    suggestion=suggestion[:1000],
                    priority=priority,
                    examples=_str_list(item.get("examples")),
                )
            )

        question_feedback: list[QuestionFeedback] = []
        for item in _dict_items(_pick(payload, "question_feedback", "questionFeedback")):
            question_id = str(_pick(item, "question_id", "questionId") or "").strip()
            if not question_id:
                continue
            question_feedback.append(
                QuestionFeedback(
                    question_id=question_id,
                    score=_as_float(item.get("score"), 0.0, 0.0, 100.0),
                    feedback=str(item.get("feedback", "")).strip()[:1000],
                    improvements=_str_list(item.get("improvements")),
                )
            )

        return FeedbackReport(
            overall_rating=_as_float(rating, 1.0, 1.0, 10.0),
            strengths=_str_list(strengths),
            weaknesses=_str_list(weaknesses),
            recommendations=recommendations,
            detailed_scores=scores,
            question_feedback=question_feedback,
            summary=str(payload.get("summary", "")).strip()[:2000],
        )
