"""Chat session facade used by the presentation layer."""

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Any

from openai import OpenAIError

from .cache import BoundedCache, response_cache_key
from .config import config
from .conversation import ConversationManager
from .embeddings import EmbeddingService
from .engines import EngineChannel, ExtractiveEngine, GenerativeEngine
from .errors import AllEnginesFailedError, InvalidInputError
from .fallback import FallbackHandler
from .knowledge import KnowledgeBase
from .models import ChatResponse, ContactFormResult, FallbackAction, ResponseStyle
from .orchestrator import DualEngineOrchestrator
from .retrieval import RetrievalEngine
from .styles import get_style_profile

logger = config.get_logger(__name__)


class ChatSession:
    """One user's conversation: retrieval, engines, escalation and history."""

    def __init__(  # noqa: PLR0913
        self,
        orchestrator: DualEngineOrchestrator,
        retrieval: RetrievalEngine,
        conversation: ConversationManager | None = None,
        fallback: FallbackHandler | None = None,
        cache: BoundedCache | None = None,
        embeddings: EmbeddingService | None = None,
    ) -> None:
        """Initialize ChatSession.

        Args:
            orchestrator: Engine orchestrator.
            retrieval: Retrieval engine for the knowledge base.
            conversation: Session history. A new one is created if None.
            fallback: Escalation handler. Shares the conversation if None.
            cache: Response cache. Sized from config if None.
            embeddings: Optional query embedding service for vector retrieval.
        """
        self.orchestrator = orchestrator
        self.retrieval = retrieval
        # Both define __len__, so an empty instance is falsy.
        self.conversation = (
            conversation if conversation is not None else ConversationManager()
        )
        self.fallback = fallback or FallbackHandler(self.conversation)
        self.cache = (
            cache
            if cache is not None
            else BoundedCache(
                config.RESPONSE_CACHE_SIZE, config.RESPONSE_CACHE_TTL_SECONDS
            )
        )
        self.embeddings = embeddings
        self.last_failed_query: str | None = None
        self.orchestrator.start_session(self.conversation.session_id)

    @property
    def style(self) -> ResponseStyle:
        return self.conversation.style

    @property
    def greeting(self) -> str:
        return get_style_profile(self.style).greeting

    async def start(self) -> dict[str, Any]:
        return await self.orchestrator.initialize()

    async def close(self) -> None:
        await self.orchestrator.cleanup()

    def select_style(self, style: ResponseStyle | str) -> None:
        self.conversation.set_style(style)

    def restart(self) -> None:
        """Start a fresh conversation with cleared escalation state."""
        self.conversation.clear()
        self.fallback.reset()
        self.cache.clear()
        self.last_failed_query = None
        self.orchestrator.start_session(self.conversation.session_id)
        logger.info("Session restarted as %s", self.conversation.session_id)

    async def _query_vector(self, text: str) -> Any:
        if self.embeddings is None or not self.retrieval.knowledge_base.has_vectors:
            return None
        try:
            return await asyncio.to_thread(self.embeddings.get_embedding, text)
        except OpenAIError:
            logger.warning("Query embedding failed; using keyword retrieval only")
            return None

    async def process_query(
        self, text: str, style: ResponseStyle | str | None = None
    ) -> ChatResponse:
        """Answer one user message.

        Returns:
            ChatResponse: An answer, a rephrase request or a contact offer.

        Raises:
            InvalidInputError: If the message is empty or not a string.
        """
        if not isinstance(text, str) or not text.strip():
            msg = "Message must be a non-empty string"
            raise InvalidInputError(msg)

        question = text.strip()
        resolved = self.style if style is None else ResponseStyle.coerce(style)
        profile = get_style_profile(resolved)

        matches = self.retrieval.search(question, await self._query_vector(question))
        matched_ids = tuple(match.entry_id for match in matches)
        key = response_cache_key(question, resolved, matched_ids)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Response cache hit for %r", question)
            self.conversation.add_turn(
                question, cached.answer, cached.matched_entry_ids, cached.confidence
            )
            return replace(cached, cached=True)

        topics = [match.entry_id for match in matches if not match.related]
        if self.conversation.is_follow_up(topics):
            logger.debug("Follow-up question on %s", topics)
        context = self.conversation.get_context(topics or None)

        try:
            outcome = await self.orchestrator.process_query(
                question, context, resolved, matches
            )
        except AllEnginesFailedError:
            logger.exception("No engine could answer %r", question)
            return ChatResponse(
                answer=profile.error_message,
                confidence=0.0,
                matched_entry_ids=matched_ids,
            )

        entry_ids = tuple(outcome.matched_entry_ids) or matched_ids
        decision = self.fallback.should_trigger_fallback(
            outcome.confidence if outcome.answer else 0.0, question, list(entry_ids)
        )

        if decision.should_fallback:
            action = self.fallback.get_next_fallback_action(question)
            fallback_response = self.fallback.generate_fallback_response(
                action, resolved
            )
            if action is FallbackAction.EMAIL:
                self.last_failed_query = question
            logger.info("Escalating %r (%s): %s", question, decision.reason, action)
            response = ChatResponse(
                answer=fallback_response.message,
                confidence=outcome.confidence,
                matched_entry_ids=entry_ids,
                fallback_action=action,
                show_contact_form=fallback_response.show_contact_form,
                engine_used=outcome.engine_used,
            )
        else:
            response = ChatResponse(
                answer=outcome.answer or profile.no_match_message,
                confidence=outcome.confidence,
                matched_entry_ids=entry_ids,
                engine_used=outcome.engine_used,
            )
            self.cache.set(key, response)

        self.conversation.add_turn(
            question, response.answer, response.matched_entry_ids, response.confidence
        )
        return response

    def submit_contact_form(self, name: str, email: str) -> ContactFormResult:
        """Validate the contact form and build the mail link.

        Returns:
            ContactFormResult: The mail link, or per-field errors.
        """
        clean_name = self.fallback.sanitize_input(name)
        clean_email = self.fallback.sanitize_input(email)

        field_errors: dict[str, str] = {}
        if not self.fallback.validate_name(clean_name):
            field_errors["name"] = "Please enter a name between 2 and 50 characters."
        if not self.fallback.validate_email(clean_email):
            field_errors["email"] = "Please enter a valid email address."
        if field_errors:
            return ContactFormResult(success=False, field_errors=field_errors)

        query = self.last_failed_query
        if query is None and self.conversation.history:
            query = self.conversation.history[-1].user_question
        link = self.fallback.generate_mailto_link(
            clean_name, clean_email, query or "", self.style
        )
        logger.info("Contact link generated for %s", clean_email)
        return ContactFormResult(success=True, mailto_link=link)

    def stats(self) -> dict[str, Any]:
        return {
            "conversation": self.conversation.stats(),
            "fallback": self.fallback.fallback_stats(),
            "engines": self.orchestrator.metrics_snapshot(),
            "cache": self.cache.stats(),
        }


def create_session(
    knowledge_base: KnowledgeBase | None = None,
    knowledge_base_path: Path | None = None,
) -> ChatSession:
    """Wire a ChatSession from configuration.

    The extractive engine is always registered. With an OpenAI API key the
    generative engine is added, entries without vectors are embedded and
    queries use the vector path too. If embedding the knowledge base fails,
    retrieval stays keyword-only.

    Returns:
        ChatSession: A session that still needs ``await session.start()``.
    """
    if knowledge_base is None:
        knowledge_base = KnowledgeBase.load(
            knowledge_base_path or config.KNOWLEDGE_BASE_PATH
        )

    embeddings = None
    has_api_key = bool(config.get_openai_api_key())
    if has_api_key:
        embeddings = EmbeddingService()
        try:
            knowledge_base = embeddings.embed_knowledge_base(knowledge_base)
        except OpenAIError:
            logger.exception("Embedding the knowledge base failed")
        if not knowledge_base.has_vectors:
            embeddings = None

    retrieval = RetrievalEngine(knowledge_base)
    channels = [EngineChannel(ExtractiveEngine(knowledge_base))]
    if has_api_key:
        channels.append(EngineChannel(GenerativeEngine()))

    orchestrator = DualEngineOrchestrator(channels, retrieval)
    return ChatSession(orchestrator, retrieval, embeddings=embeddings)
