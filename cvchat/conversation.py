"""Conversation management with bounded history and topic-aware context."""

import datetime
import re
import uuid
from collections import deque
from collections.abc import Iterable, Sequence
from typing import Any

from .config import config
from .errors import InvalidInputError
from .models import ConversationTurn, ResponseStyle

logger = config.get_logger(__name__)

_TOPIC_SEPARATOR = re.compile(r"[._]")


def _topic_prefix(topic_id: str) -> str:
    return _TOPIC_SEPARATOR.split(topic_id, maxsplit=1)[0]


def topics_related(first: str, second: str) -> bool:
    """Check whether two entry identifiers belong to the same topic.

    Identifiers are related when equal or when they share the leading
    category segment before a ``.`` or ``_`` separator.

    Returns:
        bool: True if the identifiers are related.
    """
    if first == second:
        return True
    return _topic_prefix(first) == _topic_prefix(second)


def continues_topic(
    turns: Sequence[ConversationTurn], topic_ids: Sequence[str]
) -> bool:
    """Check whether the last of ``turns`` touched any of ``topic_ids``.

    Returns:
        bool: True if the previous turn shares a topic.
    """
    if not turns or not topic_ids:
        return False
    return any(
        topics_related(entry_id, topic)
        for entry_id in turns[-1].matched_entry_ids
        for topic in topic_ids
    )


class ConversationManager:
    """Manages bounded session history with recency and topic context windows."""

    def __init__(
        self,
        max_turns: int | None = None,
        context_window: int | None = None,
        style: ResponseStyle | str = ResponseStyle.DEVELOPER,
    ) -> None:
        """Initialize ConversationManager.

        Args:
            max_turns: History cap; oldest turns are evicted beyond it.
            context_window: Default number of turns returned by get_context.
            style: Initial response style.
        """
        self.max_turns = max_turns or config.MAX_HISTORY_TURNS
        self.context_window = context_window or config.CONTEXT_WINDOW_TURNS
        self._turns: deque[ConversationTurn] = deque(maxlen=self.max_turns)
        self._style = ResponseStyle.coerce(style)
        self.session_id = self._new_session_id()

    @staticmethod
    def _new_session_id() -> str:
        return f"session_{uuid.uuid4().hex}"

    @property
    def style(self) -> ResponseStyle:
        return self._style

    @property
    def history(self) -> tuple[ConversationTurn, ...]:
        """Immutable snapshot of the full history, oldest first."""
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def set_style(self, style: ResponseStyle | str) -> None:
        """Change the current response style.

        Raises:
            InvalidInputError: If the style is not one of the known styles.
        """
        try:
            self._style = ResponseStyle(str(style).strip().lower())
        except ValueError as exc:
            msg = f"Unknown response style: {style!r}"
            raise InvalidInputError(msg) from exc
        logger.info("Conversation style set to %s", self._style)

    def add_turn(
        self,
        question: str,
        answer: str,
        matched_ids: Iterable[str] = (),
        confidence: float = 0.0,
    ) -> ConversationTurn:
        """Append a turn, evicting the oldest one once the cap is reached.

        Returns:
            ConversationTurn: The stored turn.
        """
        turn = ConversationTurn(
            user_question=str(question).strip(),
            bot_response=str(answer).strip(),
            matched_entry_ids=tuple(matched_ids),
            confidence=float(confidence),
            style=self._style,
            timestamp=datetime.datetime.now(tz=datetime.UTC).isoformat(),
        )
        self._turns.append(turn)
        logger.debug("Added turn %d to %s", len(self._turns), self.session_id)
        return turn

    def get_context(
        self, limit: int | Sequence[str] | None = None
    ) -> list[ConversationTurn]:
        """Return a context window of recent or topic-related turns.

        Args:
            limit: Number of most recent turns, or a sequence of topic
                identifiers to filter by. Defaults to the context window size.

        Returns:
            list[ConversationTurn]: Turns in original order. A topic filter
                that matches nothing falls back to the most recent turns.
        """
        if limit is None or isinstance(limit, int):
            return self._recent(self.context_window if limit is None else limit)

        if isinstance(limit, str):
            limit = [limit]
        topics = [topic for topic in limit if topic]
        if not topics:
            return self._recent(self.context_window)

        relevant = [
            turn
            for turn in self._turns
            if any(
                topics_related(entry_id, topic)
                for entry_id in turn.matched_entry_ids
                for topic in topics
            )
        ]
        if relevant:
            return relevant[-self.context_window :]
        return self._recent(self.context_window)

    def _recent(self, count: int) -> list[ConversationTurn]:
        if count <= 0:
            return []
        return list(self._turns)[-count:]

    def is_follow_up(self, topic_ids: Sequence[str]) -> bool:
        """Check whether the last recorded turn touched any of ``topic_ids``."""
        return continues_topic(self._turns, topic_ids)

    def stats(self) -> dict[str, Any]:
        """Summarize the current session.

        Returns:
            dict[str, Any]: Turn count, average confidence and unique topics.
        """
        count = len(self._turns)
        average = (
            sum(turn.confidence for turn in self._turns) / count if count else 0.0
        )
        topics = sorted({
            entry_id for turn in self._turns for entry_id in turn.matched_entry_ids
        })
        return {
            "session_id": self.session_id,
            "total_turns": count,
            "average_confidence": average,
            "unique_topics": topics,
            "style": str(self._style),
        }

    def clear(self) -> None:
        """Clear the conversation history and start a new session."""
        self._turns.clear()
        self.session_id = self._new_session_id()
        logger.info("Conversation history cleared.")
