"""Data models for the CVChat application."""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import numpy as np

from .errors import InvalidInputError

MIN_PRIORITY = 1
MAX_PRIORITY = 5
AB_RESULTS_LIMIT = 100


class ResponseStyle(StrEnum):
    """Closed set of conversation styles."""

    HR = "hr"
    DEVELOPER = "developer"
    FRIEND = "friend"

    @classmethod
    def coerce(
        cls, value: object, default: ResponseStyle | None = None
    ) -> ResponseStyle:
        """Map a raw value onto a style, falling back to ``default``.

        Returns:
            The matching style, or ``default`` (developer when not given).
        """
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default or cls.DEVELOPER


class FallbackAction(StrEnum):
    """Escalation actions produced by the fallback handler."""

    REPHRASE = "rephrase"
    EMAIL = "email"


@dataclass(frozen=True, eq=False)
class KnowledgeEntry:
    """Immutable unit of the knowledge base."""

    id: str
    category: str
    keywords: tuple[str, ...] = ()
    vector: np.ndarray | None = None
    responses: Mapping[str, str] = field(default_factory=dict)
    details: Mapping[str, Any] = field(default_factory=dict)
    priority: int = 3
    confidence: float = 1.0
    related_ids: tuple[str, ...] = ()
    search_text: str = ""

    def __post_init__(self) -> None:
        if not MIN_PRIORITY <= self.priority <= MAX_PRIORITY:
            msg = f"Entry {self.id!r}: priority must be in 1..5, got {self.priority}"
            raise InvalidInputError(msg)
        if not 0.0 <= self.confidence <= 1.0:
            msg = (
                f"Entry {self.id!r}: confidence must be in [0, 1], "
                f"got {self.confidence}"
            )
            raise InvalidInputError(msg)

    @property
    def priority_weight(self) -> float:
        """Weight derived from priority, 1.0 for priority 1 down to 0.2."""
        return (6 - self.priority) / 5

    def response_for(self, style: ResponseStyle | str) -> str | None:
        """Canonical answer text for ``style``, falling back to developer.

        Returns:
            The style text, or None when the entry has no responses.
        """
        text = self.responses.get(str(style)) or self.responses.get(
            ResponseStyle.DEVELOPER.value
        )
        if text:
            return text
        return next(iter(self.responses.values()), None)


@dataclass(frozen=True)
class RetrievalMatch:
    """Result of scoring one knowledge entry against one query."""

    entry: KnowledgeEntry
    raw_score: float
    score: float
    matched_keywords: tuple[str, ...] = ()
    related: bool = False

    @property
    def entry_id(self) -> str:
        return self.entry.id


@dataclass(frozen=True)
class ConversationTurn:
    """Represents a single turn in the conversation."""

    user_question: str
    bot_response: str
    matched_entry_ids: tuple[str, ...]
    confidence: float
    style: ResponseStyle | None
    timestamp: str


@dataclass(frozen=True)
class EngineQueryOutcome:
    """Result of one engine round-trip as seen by callers of the orchestrator."""

    answer: str | None
    confidence: float
    matched_entries: tuple[tuple[str, float], ...]
    processing_time_ms: float
    engine_used: str
    fallback_used: bool = False
    original_error: str | None = None
    query_id: str = ""

    @property
    def matched_entry_ids(self) -> list[str]:
        return [entry_id for entry_id, _ in self.matched_entries]


@dataclass
class EngineMetrics:
    """Rolling aggregate for a single engine."""

    queries: int = 0
    average_latency_ms: float = 0.0
    average_confidence: float = 0.0
    fallback_count: int = 0
    error_count: int = 0

    def record(self, latency_ms: float, confidence: float) -> None:
        """Fold one successful outcome into the running averages."""
        self.queries += 1
        count = self.queries
        self.average_latency_ms += (latency_ms - self.average_latency_ms) / count
        self.average_confidence += (confidence - self.average_confidence) / count

    @property
    def success_rate(self) -> float:
        attempts = self.queries + self.error_count
        if attempts == 0:
            return 0.0
        return self.queries / attempts


@dataclass
class ABTally:
    """Per-engine comparison figures collected during an A/B session."""

    count: int = 0
    average_confidence: float = 0.0
    average_latency_ms: float = 0.0
    average_answer_length: float = 0.0

    def record(
        self, confidence: float, latency_ms: float, answer_length: int
    ) -> None:
        self.count += 1
        self.average_confidence += (confidence - self.average_confidence) / self.count
        self.average_latency_ms += (latency_ms - self.average_latency_ms) / self.count
        self.average_answer_length += (
            answer_length - self.average_answer_length
        ) / self.count


@dataclass
class ABTestAssignment:
    """Fixed engine choice for one session plus its comparison tallies."""

    session_id: str
    engine: str
    tallies: dict[str, ABTally] = field(default_factory=dict)
    results: deque[dict[str, Any]] = field(
        default_factory=lambda: deque(maxlen=AB_RESULTS_LIMIT)
    )


@dataclass(frozen=True)
class FallbackDecision:
    """Outcome of evaluating a confidence score for escalation."""

    should_fallback: bool
    reason: str
    action: FallbackAction | None = None


@dataclass(frozen=True)
class FallbackResponse:
    """User-facing message for a fallback action."""

    action: FallbackAction | None
    message: str
    ui_action: str
    show_contact_form: bool = False


@dataclass(frozen=True)
class ChatResponse:
    """What the presentation layer receives for a processed query."""

    answer: str
    confidence: float
    matched_entry_ids: tuple[str, ...] = ()
    fallback_action: FallbackAction | None = None
    show_contact_form: bool = False
    engine_used: str | None = None
    cached: bool = False


@dataclass(frozen=True)
class ContactFormResult:
    """Result of submitting the human-contact form."""

    success: bool
    mailto_link: str | None = None
    field_errors: dict[str, str] = field(default_factory=dict)
