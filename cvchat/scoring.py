"""Confidence heuristics for retrieval results and generated answers.

Every constant here is a tunable default rather than a derived value; only
the direction of each adjustment matters to callers.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from .models import RetrievalMatch
from .retrieval import tokenize

SHORT_ANSWER_LENGTH = 20
BROAD_QUERY_LENGTH = 30


@dataclass(frozen=True)
class ConfidenceSettings:
    """Tunable weights for confidence estimation."""

    base: float = 0.4
    score_weight: float = 0.4
    multi_term_boost: float = 0.1
    corroboration_boost: float = 0.05
    corroboration_score: float = 0.6
    ceiling: float = 0.95
    specific_term_boost: float = 0.03
    broad_query_penalty: float = 0.05
    project_question_boost: float = 0.02
    generated_base: float = 0.7
    short_answer_penalty: float = 0.1
    low_relevance_penalty: float = 0.15
    relevance_floor: float = 0.5
    specific_terms: tuple[str, ...] = (
        "react",
        "javascript",
        "node",
        "typescript",
        "python",
        "scss",
    )
    broad_terms: tuple[str, ...] = ("experience", "skills", "background", "about")


DEFAULT_SETTINGS = ConfidenceSettings()


def _clamp(value: float, ceiling: float = 1.0) -> float:
    return max(0.0, min(ceiling, value))


def adjust_for_query(
    confidence: float, query: str, settings: ConfidenceSettings = DEFAULT_SETTINGS
) -> float:
    """Nudge a confidence score by query shape.

    Returns:
        The adjusted, unclamped score.
    """
    lowered = query.lower()
    adjusted = confidence
    if any(term in lowered for term in settings.specific_terms):
        adjusted += settings.specific_term_boost
    if (
        any(term in lowered for term in settings.broad_terms)
        and len(query) < BROAD_QUERY_LENGTH
    ):
        adjusted -= settings.broad_query_penalty
    if "project" in lowered and "?" in query:
        adjusted += settings.project_question_boost
    return adjusted


def estimate_retrieval_confidence(
    matches: Sequence[RetrievalMatch],
    query: str,
    settings: ConfidenceSettings = DEFAULT_SETTINGS,
) -> float:
    """Confidence that the retrieved entries answer ``query``.

    Related entries appended for enrichment do not count as evidence.

    Returns:
        Score in [0, settings.ceiling]; 0.0 when nothing matched.
    """
    direct = [match for match in matches if not match.related]
    if not direct:
        return 0.0

    best = direct[0]
    confidence = settings.base + settings.score_weight * best.score
    if len(best.matched_keywords) > 1:
        confidence += settings.multi_term_boost
    if len(direct) > 1 and direct[1].score > settings.corroboration_score:
        confidence += settings.corroboration_boost

    confidence = adjust_for_query(confidence, query, settings)
    return _clamp(confidence, settings.ceiling)


def query_relevance(answer: str, query: str) -> float:
    """Share of significant query words that appear in ``answer``.

    Returns:
        Ratio in [0, 1]; 0.0 when the query has no significant words.
    """
    query_words = tokenize(query)
    if not query_words or not answer:
        return 0.0
    answer_words = answer.lower().split()
    hits = sum(
        1
        for word in query_words
        if any(word in candidate for candidate in answer_words)
    )
    return hits / len(query_words)


def score_generated_answer(
    answer: str,
    query: str,
    settings: ConfidenceSettings = DEFAULT_SETTINGS,
) -> float:
    """Confidence for free-form generated text.

    Starts from ``generated_base`` and is lowered for very short answers
    and answers that barely mention what was asked.

    Returns:
        Score in [0, 1].
    """
    confidence = settings.generated_base
    if len(answer.strip()) < SHORT_ANSWER_LENGTH:
        confidence -= settings.short_answer_penalty
    if query_relevance(answer, query) < settings.relevance_floor:
        confidence -= settings.low_relevance_penalty
    return _clamp(adjust_for_query(confidence, query, settings))
