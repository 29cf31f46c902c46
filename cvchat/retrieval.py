"""Keyword and vector retrieval over the knowledge base."""

import re
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from .config import config
from .errors import InvalidInputError
from .knowledge import KnowledgeBase
from .models import KnowledgeEntry, RetrievalMatch
from .similarity import rank_by_similarity

logger = config.get_logger(__name__)

MIN_TOKEN_LENGTH = 3
MIN_RESULTS = 2
MAX_RESULTS = 3
RELATED_SCORE_FACTOR = 0.5

QUESTION_PREFIXES = (
    "what",
    "how",
    "why",
    "when",
    "where",
    "who",
    "which",
    "do you",
    "can you",
    "tell me",
)
TECHNICAL_TERMS = (
    "framework",
    "library",
    "algorithm",
    "architecture",
    "implementation",
)
STOP_WORDS = frozenset({
    "the", "and", "but", "for", "with", "are", "was", "were", "been", "have",
    "has", "had", "does", "did", "will", "would", "could", "should", "what",
    "how", "when", "where", "why", "who", "which", "that", "this", "you",
    "your",
})  # fmt: skip


@dataclass(frozen=True)
class ThresholdSettings:
    """Tunable offsets for the adaptive acceptance threshold."""

    base: float = 0.7
    short_query_length: int = 20
    short_query_offset: float = -0.1
    question_offset: float = -0.05
    technical_offset: float = 0.05
    keyword_floor: float = 0.1
    technical_terms: tuple[str, ...] = TECHNICAL_TERMS


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens longer than two characters, stop words removed.

    Returns:
        Tokens in query order, duplicates removed.
    """
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    tokens = [
        word
        for word in words
        if len(word) >= MIN_TOKEN_LENGTH and word not in STOP_WORDS
    ]
    return list(dict.fromkeys(tokens))


def is_interrogative(query: str) -> bool:
    normalized = query.strip().lower()
    return "?" in normalized or normalized.startswith(QUESTION_PREFIXES)


class RetrievalEngine:
    """Ranks knowledge entries for a free-text query."""

    SUBSTRING_WEIGHT = 1.0
    WORD_BOUNDARY_WEIGHT = 3.0
    KEYWORD_WEIGHT = 5.0

    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        max_results: int = MIN_RESULTS,
        thresholds: ThresholdSettings | None = None,
        *,
        extend_related: bool = True,
    ) -> None:
        """Initialize RetrievalEngine.

        Args:
            knowledge_base: Entries to search.
            max_results: How many matches to return, between 2 and 3.
            thresholds: Adaptive threshold settings. Defaults are used if None.
            extend_related: Append one related entry when only one match
                survives.

        Raises:
            InvalidInputError: If max_results is outside 2..3.
        """
        if not MIN_RESULTS <= max_results <= MAX_RESULTS:
            msg = f"max_results must be between 2 and 3, got {max_results}"
            raise InvalidInputError(msg)
        self.knowledge_base = knowledge_base
        self.max_results = max_results
        self.thresholds = thresholds or ThresholdSettings()
        self.extend_related = extend_related

    def adaptive_threshold(self, query: str) -> float:
        """Acceptance threshold for ``query``.

        Short and interrogative queries get a looser bar; queries naming
        precise technical terms get a tighter one.

        Returns:
            Threshold clamped to [0, 1].
        """
        settings = self.thresholds
        threshold = settings.base
        if len(query.strip()) < settings.short_query_length:
            threshold += settings.short_query_offset
        if is_interrogative(query):
            threshold += settings.question_offset
        lowered = query.lower()
        if any(term in lowered for term in settings.technical_terms):
            threshold += settings.technical_offset
        return max(0.0, min(1.0, threshold))

    def keyword_threshold(self, query: str) -> float:
        """Minimum normalised keyword similarity, scaled like the vector bar.

        Returns:
            The keyword floor scaled by the adaptive threshold.
        """
        settings = self.thresholds
        if settings.base == 0:
            return settings.keyword_floor
        return settings.keyword_floor * self.adaptive_threshold(query) / settings.base

    def keyword_score(
        self, tokens: Sequence[str], query: str, entry: KnowledgeEntry
    ) -> tuple[float, list[str]]:
        """Raw keyword points for ``entry`` before priority weighting.

        Returns:
            Tuple of (points, matched terms).
        """
        score = 0.0
        matched: list[str] = []
        search_text = entry.search_text

        if search_text:
            for token in tokens:
                if token not in search_text:
                    continue
                if re.search(rf"\b{re.escape(token)}\b", search_text):
                    score += self.WORD_BOUNDARY_WEIGHT
                else:
                    score += self.SUBSTRING_WEIGHT
                matched.append(token)

        lowered_query = query.lower()
        for keyword in entry.keywords:
            normalized = keyword.lower().strip()
            if normalized and re.search(
                rf"(?<!\w){re.escape(normalized)}(?!\w)", lowered_query
            ):
                score += self.KEYWORD_WEIGHT
                matched.append(keyword)

        return score, list(dict.fromkeys(matched))

    def search(
        self,
        query: str,
        query_vector: Sequence[float] | np.ndarray | None = None,
    ) -> list[RetrievalMatch]:
        """Return the top matches for ``query``.

        Args:
            query: Free-text question.
            query_vector: Optional embedding of the query for the vector path.

        Returns:
            Matches sorted by adjusted score, at most ``max_results`` long
            (plus one related entry when exactly one match survived).

        Raises:
            InvalidInputError: If the query is empty or not a string.
        """
        if not isinstance(query, str) or not query.strip():
            msg = "Query must be a non-empty string"
            raise InvalidInputError(msg)

        tokens = tokenize(query)
        threshold = self.adaptive_threshold(query)
        keyword_bar = self.keyword_threshold(query)
        divisor = len(tokens) + 3
        vector_scores: dict[str, float] = {}
        if query_vector is not None and self.knowledge_base.has_vectors:
            vector_scores = {
                entry.id: similarity
                for entry, similarity in rank_by_similarity(
                    query_vector, self.knowledge_base
                )
            }

        matches: list[RetrievalMatch] = []
        for entry in self.knowledge_base:
            weight = entry.priority_weight * entry.confidence

            points, matched_terms = self.keyword_score(tokens, query, entry)
            keyword_raw = min(1.0, points / divisor)
            keyword_similarity = min(1.0, points * weight / divisor)

            vector_raw = vector_scores.get(entry.id, 0.0)
            vector_similarity = max(0.0, vector_raw) * weight

            accepted_by_keywords = points > 0 and keyword_similarity >= keyword_bar
            accepted_by_vector = vector_raw >= threshold
            if not (accepted_by_keywords or accepted_by_vector):
                continue

            matches.append(
                RetrievalMatch(
                    entry=entry,
                    raw_score=max(keyword_raw, vector_raw),
                    score=max(keyword_similarity, vector_similarity),
                    matched_keywords=tuple(matched_terms),
                )
            )

        ranked = sorted(matches, key=lambda match: match.score, reverse=True)
        ranked = ranked[: self.max_results]

        if self.extend_related and len(ranked) == 1:
            related = self._related_match(ranked[0])
            if related is not None:
                ranked.append(related)

        logger.debug(
            "Retrieved %d matches for %r (threshold %.2f)",
            len(ranked),
            query,
            threshold,
        )
        return ranked

    def _related_match(self, best: RetrievalMatch) -> RetrievalMatch | None:
        for related_id in best.entry.related_ids:
            if related_id == best.entry_id:
                continue
            related_entry = self.knowledge_base.get(related_id)
            if related_entry is not None:
                return RetrievalMatch(
                    entry=related_entry,
                    raw_score=0.0,
                    score=best.score * RELATED_SCORE_FACTOR,
                    related=True,
                )
        return None
