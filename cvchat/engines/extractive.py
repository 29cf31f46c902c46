"""Local engine that answers from the canonical per-style entry texts."""

from collections.abc import Sequence

from ..config import config
from ..conversation import continues_topic
from ..errors import EngineError
from ..knowledge import KnowledgeBase
from ..models import ConversationTurn, ResponseStyle, RetrievalMatch
from ..retry import RetryPolicy
from ..scoring import ConfidenceSettings, estimate_retrieval_confidence
from ..styles import get_style_profile
from .base import EngineWorker
from .messages import EngineRequest, EngineSuccess

logger = config.get_logger(__name__)

MAX_COMBINED_RESPONSES = 3


class ExtractiveEngine(EngineWorker):
    """Composes answers from the texts stored on retrieved entries."""

    name = "extractive"

    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        confidence_settings: ConfidenceSettings | None = None,
        retry_policy: RetryPolicy | None = None,
        persona: str | None = None,
    ) -> None:
        super().__init__(retry_policy)
        self.knowledge_base = knowledge_base
        self.confidence_settings = confidence_settings or ConfidenceSettings()
        self.persona = persona

    async def load(self) -> None:
        if not len(self.knowledge_base):
            msg = "Knowledge base is empty"
            raise EngineError(msg, engine=self.name)
        logger.info(
            "Extractive engine loaded %d entries", len(self.knowledge_base)
        )

    async def answer(self, request: EngineRequest) -> EngineSuccess:
        matched = tuple(
            (match.entry_id, round(match.score, 4)) for match in request.matches
        )
        answer = self.compose(request.matches, request.style, request.context)
        confidence = (
            estimate_retrieval_confidence(
                request.matches, request.message, self.confidence_settings
            )
            if answer
            else 0.0
        )
        return EngineSuccess(
            correlation_id=request.correlation_id,
            answer=answer,
            confidence=confidence,
            matched_entries=matched,
        )

    def compose(
        self,
        matches: Sequence[RetrievalMatch],
        style: ResponseStyle,
        context: Sequence[ConversationTurn] = (),
    ) -> str | None:
        """Join the style texts of the top matches into one answer.

        Returns:
            The composed answer, or None when no match has text.
        """
        profile = get_style_profile(style, self.persona)
        responses = [
            text
            for text in (
                match.entry.response_for(style)
                for match in matches[:MAX_COMBINED_RESPONSES]
            )
            if text
        ]
        if not responses:
            return None

        if len(responses) == 1:
            answer = responses[0]
        else:
            joined = f" {profile.continuation} ".join(responses)
            answer = f"{profile.multi_topic_intro} {joined}"

        topics = [match.entry_id for match in matches if not match.related]
        if continues_topic(context, topics):
            answer = f"{profile.follow_up_phrase} {answer}"
        return answer
