"""Graduated escalation from rephrase requests to human contact."""

import re
from typing import Any
from urllib.parse import quote

from .config import config
from .conversation import ConversationManager
from .models import (
    FallbackAction,
    FallbackDecision,
    FallbackResponse,
    ResponseStyle,
)
from .styles import get_style_profile

logger = config.get_logger(__name__)

MAX_INPUT_LENGTH = 200
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 50
EMAIL_CONTEXT_TURNS = 3
EMAIL_EXCERPT_LENGTH = 100

_EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_SCRIPT_PATTERN = re.compile(r"<script.*?</script>", re.IGNORECASE | re.DOTALL)
_ANGLE_BRACKETS = re.compile(r"[<>]")


class FallbackHandler:
    """Tracks low-confidence attempts per query and picks the next escalation.

    Each normalized query moves from no attempt, to a rephrase request, to an
    email offer on the second and every later attempt. The handler never
    raises on a confidence outcome.
    """

    MAX_ATTEMPTS = 2
    CONFIDENCE_THRESHOLD = 0.5
    LOW_CONFIDENCE_THRESHOLD = 0.3

    def __init__(
        self,
        conversation: ConversationManager | None = None,
        contact_email: str | None = None,
        persona: str | None = None,
    ) -> None:
        """Initialize FallbackHandler.

        Args:
            conversation: Source of recent turns for contact emails.
            contact_email: Recipient of generated mail links.
            persona: Name used in style texts.
        """
        self.conversation = conversation
        self.contact_email = contact_email or config.CONTACT_EMAIL
        self.persona = persona or config.PERSONA_NAME
        self._attempts: dict[str, int] = {}

    @staticmethod
    def normalize_query(query: str) -> str:
        return str(query or "").strip().lower()

    def attempts_for(self, query: str) -> int:
        return self._attempts.get(self.normalize_query(query), 0)

    def _peek_action(self, query: str) -> FallbackAction:
        if self.attempts_for(query) == 0:
            return FallbackAction.REPHRASE
        return FallbackAction.EMAIL

    def should_trigger_fallback(
        self,
        confidence: float,
        query: str,
        matched_ids: list[str] | tuple[str, ...] | None = None,
    ) -> FallbackDecision:
        """Decide whether a result is too weak to show as an answer.

        The returned action is the one the next escalation step would take;
        the attempt counter is not advanced here.

        Returns:
            FallbackDecision: Whether to fall back, why, and the pending action.
        """
        if not matched_ids:
            reason = "no_matches"
        elif confidence < self.LOW_CONFIDENCE_THRESHOLD:
            reason = "very_low_confidence"
        elif confidence < self.CONFIDENCE_THRESHOLD:
            reason = "low_confidence"
        else:
            return FallbackDecision(
                should_fallback=False, reason="sufficient_confidence"
            )

        return FallbackDecision(
            should_fallback=True, reason=reason, action=self._peek_action(query)
        )

    def get_next_fallback_action(self, query: str) -> FallbackAction:
        """Advance the attempt counter for ``query``.

        Returns:
            FallbackAction: REPHRASE on the first attempt, EMAIL afterwards.
        """
        key = self.normalize_query(query)
        attempts = self._attempts.get(key, 0) + 1
        self._attempts[key] = attempts
        action = FallbackAction.REPHRASE if attempts == 1 else FallbackAction.EMAIL
        logger.info("Fallback attempt %d for %r: %s", attempts, key, action)
        return action

    def has_reached_max_attempts(self, query: str) -> bool:
        return self.attempts_for(query) >= self.MAX_ATTEMPTS

    def generate_fallback_response(
        self, action: FallbackAction | str | None, style: ResponseStyle | str | None
    ) -> FallbackResponse:
        """Build the user-facing message for an escalation action.

        Returns:
            FallbackResponse: Message text plus UI hints.
        """
        profile = get_style_profile(style, self.persona)
        if action == FallbackAction.REPHRASE:
            return FallbackResponse(
                action=FallbackAction.REPHRASE,
                message=f"{profile.rephrase_message} {profile.rephrase_suggestions}",
                ui_action="show_message",
            )
        if action == FallbackAction.EMAIL:
            return FallbackResponse(
                action=FallbackAction.EMAIL,
                message=profile.email_offer,
                ui_action="show_email_form",
                show_contact_form=True,
            )
        return FallbackResponse(
            action=None, message=profile.no_match_message, ui_action="show_message"
        )

    def conversation_excerpt(self) -> str:
        """Recent exchanges formatted for an email body.

        Returns:
            str: Numbered exchanges, or an empty string without history.
        """
        if self.conversation is None:
            return ""
        turns = self.conversation.get_context(EMAIL_CONTEXT_TURNS)
        lines = []
        for index, turn in enumerate(turns, start=1):
            answer = turn.bot_response
            if len(answer) > EMAIL_EXCERPT_LENGTH:
                answer = answer[:EMAIL_EXCERPT_LENGTH] + "..."
            lines.append(f"{index}. User: {turn.user_question}\n   AI: {answer}")
        return "\n\n".join(lines)

    def generate_email_body(
        self, name: str, email: str, query: str, style: ResponseStyle | str | None
    ) -> str:
        profile = get_style_profile(style, self.persona)
        excerpt = self.conversation_excerpt()
        context_block = f"Conversation context:\n{excerpt}\n" if excerpt else ""
        return (
            f"{profile.email_greeting}\n\n"
            "My contact information:\n"
            f"Name: {name}\n"
            f"Email: {email}\n\n"
            f'Original question: "{query}"\n\n'
            f"{context_block}\n"
            f"{profile.email_closing}\n"
            f"{name}"
        )

    def generate_mailto_link(
        self,
        name: str,
        email: str,
        query: str,
        style: ResponseStyle | str | None = None,
    ) -> str:
        """Build a percent-encoded mail link to the represented person.

        Name and email are sanitized before use.

        Returns:
            str: A ``mailto:`` URL with subject and body.
        """
        clean_name = self.sanitize_input(name)
        clean_email = self.sanitize_input(email)
        profile = get_style_profile(style, self.persona)
        subject = quote(f"{profile.email_subject} - {clean_name}", safe="")
        body = quote(
            self.generate_email_body(clean_name, clean_email, query, style), safe=""
        )
        recipient = quote(self.contact_email, safe="@")
        return f"mailto:{recipient}?subject={subject}&body={body}"

    @staticmethod
    def sanitize_input(value: Any) -> str:
        """Strip script tags and angle brackets, trim and cap the length.

        Returns:
            str: Cleaned text; empty for non-string input.
        """
        if not isinstance(value, str) or not value:
            return ""
        cleaned = _SCRIPT_PATTERN.sub("", value.strip())
        cleaned = _ANGLE_BRACKETS.sub("", cleaned)
        return cleaned[:MAX_INPUT_LENGTH]

    @staticmethod
    def validate_email(email: Any) -> bool:
        return isinstance(email, str) and bool(_EMAIL_PATTERN.fullmatch(email))

    @staticmethod
    def validate_name(name: Any) -> bool:
        if not isinstance(name, str):
            return False
        return MIN_NAME_LENGTH <= len(name.strip()) <= MAX_NAME_LENGTH

    def reset(self) -> None:
        """Forget all attempt counters."""
        self._attempts.clear()
        logger.info("Fallback attempts reset.")

    def fallback_stats(self) -> dict[str, Any]:
        total = len(self._attempts)
        average = sum(self._attempts.values()) / total if total else 0.0
        return {
            "total_queries": total,
            "average_attempts": average,
            "max_attempts": self.MAX_ATTEMPTS,
            "confidence_threshold": self.CONFIDENCE_THRESHOLD,
            "low_confidence_threshold": self.LOW_CONFIDENCE_THRESHOLD,
        }
