"""OpenAI chat-completions engine."""

import re

from openai import AsyncOpenAI

from ..config import config
from ..errors import EngineError
from ..prompts import PromptBuilder
from ..retry import RetryPolicy
from ..scoring import ConfidenceSettings, score_generated_answer
from .base import EngineWorker
from .messages import EngineRequest, EngineSuccess

logger = config.get_logger(__name__)

_ANSWER_PREFIX = re.compile(r"^(answer:|response:|a:)\s*", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def clean_generated_text(text: str | None) -> str:
    """Strip answer prefixes and collapse whitespace in model output.

    Returns:
        str: The cleaned text, empty if nothing remains.
    """
    if not text:
        return ""
    cleaned = _ANSWER_PREFIX.sub("", text.strip())
    return _WHITESPACE.sub(" ", cleaned).strip()


class GenerativeEngine(EngineWorker):
    """Answers with an OpenAI chat model grounded on retrieved entries."""

    name = "generative"

    def __init__(  # noqa: PLR0913, PLR0917
        self,
        client: AsyncOpenAI | None = None,
        prompt_builder: PromptBuilder | None = None,
        model: str | None = None,
        confidence_settings: ConfidenceSettings | None = None,
        retry_policy: RetryPolicy | None = None,
        api_key: str | None = None,
    ) -> None:
        """Initialize GenerativeEngine.

        Args:
            client: Preconfigured client. Created on load when None.
            prompt_builder: Builder for the instruction block.
            model: Chat model name. If None, uses config.CHAT_MODEL.
            confidence_settings: Heuristics for scoring generated text.
            retry_policy: Policy applied while loading.
            api_key: OpenAI API key. If None, read from the environment.
        """
        super().__init__(retry_policy)
        self.client = client
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.model = model or config.CHAT_MODEL
        self.confidence_settings = confidence_settings or ConfidenceSettings()
        self._api_key = api_key

    async def load(self) -> None:
        """Create the client and check that the chat model is reachable."""
        if self.client is None:
            api_key = self._api_key or config.get_openai_api_key()
            if not api_key:
                msg = "OPENAI_API_KEY is not set"
                raise EngineError(msg, engine=self.name)
            default_headers = config.get_api_headers()
            self.client = AsyncOpenAI(
                api_key=api_key,
                base_url=config.OPENAI_BASE_URL,
                default_headers=default_headers or None,
            )
        await self.client.models.retrieve(self.model)
        logger.info("Generative engine using model %s", self.model)

    async def answer(self, request: EngineRequest) -> EngineSuccess:
        if self.client is None:
            msg = "Generative engine is not loaded"
            raise EngineError(msg, engine=self.name)

        context = self.prompt_builder.build_context(request.matches, request.style)
        prompt = self.prompt_builder.build(
            request.message, context, request.style, request.context
        )
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=config.CHAT_MAX_TOKENS,
            temperature=config.CHAT_TEMPERATURE,
        )
        answer = clean_generated_text(response.choices[0].message.content)
        if not answer:
            msg = "Model returned an empty answer"
            raise EngineError(msg, engine=self.name)

        return EngineSuccess(
            correlation_id=request.correlation_id,
            answer=answer,
            confidence=score_generated_answer(
                answer, request.message, self.confidence_settings
            ),
            matched_entries=tuple(
                (match.entry_id, round(match.score, 4)) for match in request.matches
            ),
        )

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
