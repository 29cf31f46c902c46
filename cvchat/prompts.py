"""Prompt construction for the generative engine."""

from collections.abc import Mapping, Sequence
from typing import Any

from .config import config
from .errors import InvalidInputError
from .models import ConversationTurn, ResponseStyle, RetrievalMatch
from .styles import get_style_profile

MAX_PROMPT_TURNS = 2
DEFAULT_MAX_WORDS = 100
MAX_DETAIL_ITEMS = 5


def extract_key_details(details: Mapping[str, Any], style: ResponseStyle) -> str | None:
    """Pick the detail fields that matter for ``style``.

    Returns:
        A ``Label: value | ...`` line, or None when nothing applies.
    """

    def _listing(key: str, limit: int) -> str | None:
        value = details.get(key)
        if isinstance(value, list | tuple) and value:
            return ", ".join(str(item) for item in value[:limit])
        return None

    parts: list[str] = []
    if style is ResponseStyle.HR:
        for key, label in (
            ("position", "Position"),
            ("company", "Company"),
            ("period", "Period"),
            ("experience_years", "Experience"),
        ):
            if details.get(key):
                parts.append(f"{label}: {details[key]}")
    elif style is ResponseStyle.DEVELOPER:
        for key in ("technologies", "primary_technologies"):
            listing = _listing(key, MAX_DETAIL_ITEMS)
            if listing:
                parts.append(f"Tech: {listing}")
        specialties = _listing("specialties", 3)
        if specialties:
            parts.append(f"Specialties: {specialties}")
    else:
        for key, label in (("interests", "Interests"), ("activities", "Activities")):
            listing = _listing(key, 3)
            if listing:
                parts.append(f"{label}: {listing}")

    return " | ".join(parts) if parts else None


class PromptBuilder:
    """Builds bounded, style-conditioned instruction blocks."""

    def __init__(
        self, persona: str | None = None, max_words: int = DEFAULT_MAX_WORDS
    ) -> None:
        """Initialize PromptBuilder.

        Args:
            persona: Name of the represented person. Defaults to
                config.PERSONA_NAME.
            max_words: Word limit stated in the instructions.
        """
        self.persona = persona or config.PERSONA_NAME
        self.max_words = max_words

    def build_context(
        self, matches: Sequence[RetrievalMatch], style: ResponseStyle | str
    ) -> str | None:
        """Turn retrieved matches into a context block.

        Returns:
            The context text, or None when no match carries usable text.
        """
        resolved = ResponseStyle.coerce(style)
        parts: list[str] = []
        for match in matches:
            text = match.entry.response_for(resolved) or match.entry.search_text
            if not text:
                continue
            if match.related:
                parts.append(f"Related: {text}")
                continue
            parts.append(text)
            details = extract_key_details(match.entry.details, resolved)
            if details:
                parts.append(details)
        return "\n\n".join(parts) if parts else None

    def build(
        self,
        question: str,
        context: str | None = None,
        style: ResponseStyle | str | None = ResponseStyle.DEVELOPER,
        conversation: Sequence[ConversationTurn] = (),
    ) -> str:
        """Build the instruction block for one question.

        Only the two most recent conversation turns are included.

        Returns:
            The prompt text.

        Raises:
            InvalidInputError: If the question is empty or not a string.
        """
        if not isinstance(question, str) or not question.strip():
            msg = "Question must be a non-empty string"
            raise InvalidInputError(msg)

        profile = get_style_profile(style, self.persona)
        prompt = (
            f"You are {self.persona}, a software developer. "
            f"Respond in a {profile.prompt_instruction}.\n\n"
        )

        if context and context.strip():
            prompt += f"Context:\n{context.strip()}\n\n"

        recent = list(conversation)[-MAX_PROMPT_TURNS:]
        if recent:
            prompt += "Recent conversation:\n"
            for index, turn in enumerate(recent, start=1):
                prompt += (
                    f"Q{index}: {turn.user_question}\nA{index}: {turn.bot_response}\n"
                )
            prompt += "\n"

        prompt += f"Current question: {question.strip()}\n\n"
        prompt += (
            "Instructions:\n"
            f"- Answer as {self.persona} in first person\n"
            "- Use only the information provided in the context above\n"
            "- If no relevant information is available, acknowledge this honestly\n"
            f"- Keep response under {self.max_words} words\n"
            "- Be specific and provide concrete examples or details when possible\n\n"
            "Answer:"
        )
        return prompt
