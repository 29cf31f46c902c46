"""Test configuration and fixtures for CVChat tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock OpenAI responses and embedding services
- Knowledge base and retrieval fixtures
- Conversation and fallback fixtures
- Fake engines, engine channels and orchestrators
"""

import asyncio
import hashlib
import random
from unittest.mock import AsyncMock, Mock, patch

import numpy as np
import pytest
import pytest_asyncio

from cvchat import (
    BoundedCache,
    ChatSession,
    ConversationManager,
    DualEngineOrchestrator,
    EmbeddingService,
    EventEmitter,
    FallbackHandler,
    KnowledgeBase,
    KnowledgeEntry,
    RetrievalEngine,
    RetryPolicy,
)
from cvchat.engines import EngineChannel, EngineRequest, EngineSuccess, EngineWorker


class TestConstants:
    """Centralized test constants to avoid repetition across test files.

    All test constants are defined here to maintain consistency across
    the test suite and make it easy to update values globally.
    """

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_OPENAI_MODEL = "text-embedding-3-small"
    TEST_CHAT_MODEL = "gpt-test"
    DEFAULT_EMBEDDING_DIMENSION = 384

    # Persona
    PERSONA_NAME = "Serhii"
    CONTACT_EMAIL = "serhii@example.com"

    # Engine timing
    QUERY_TIMEOUT = 0.2
    INIT_TIMEOUT = 2.0

    # Conversation limits
    MAX_TURNS = 25
    CONTEXT_WINDOW = 5


SAMPLE_SECTIONS = {
    "skills": {
        "react": {
            "keywords": ["react", "hooks", "frontend"],
            "priority": 1,
            "confidence": 1.0,
            "responses": {
                "hr": "Serhii has six years of React experience.",
                "developer": "I've built React apps for six years.",
                "friend": "React is my favorite! 😍",
            },
            "details": {"primary_technologies": ["React", "Redux"]},
            "relatedSections": ["projects_design_system"],
        },
        "javascript": {
            "keywords": ["javascript", "typescript"],
            "priority": 1,
            "responses": {
                "hr": "Serhii is an expert in JavaScript.",
                "developer": "JavaScript and TypeScript are my daily drivers.",
                "friend": "JavaScript is basically my native language!",
            },
        },
    },
    "projects": {
        "design_system": {
            "keywords": ["design system", "component library"],
            "priority": 2,
            "confidence": 0.9,
            "responses": {
                "hr": "Serhii led a company-wide design system.",
                "developer": "I built our design system with sixty components.",
                "friend": "I built a whole design system! 🎉",
            },
            "details": {"technologies": ["React", "Storybook"]},
        },
    },
    "personal": {
        "hobbies": {
            "keywords": ["hobbies", "hiking"],
            "priority": 4,
            "confidence": 0.7,
            "responses": {
                "developer": "Outside work I hike a lot.",
            },
            "details": {"interests": ["hiking", "photography"]},
        },
    },
}


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash,
    ensuring consistent test results across runs.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        """Initialize mock embedding service.

        Args:
            dimension: Dimensionality of generated embeddings.
        """
        self.dimension = dimension

    def get_embedding(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)

    def get_embeddings_batch(
        self,
        texts: list[str],
    ) -> list[np.ndarray]:
        """Generate batch of mock embeddings."""
        return [self.get_embedding(text) for text in texts]


class FakeEngine(EngineWorker):
    """Scriptable engine for channel and orchestrator tests.

    Fails loading ``load_failures`` times, then answers every request with
    ``answer`` and ``confidence`` after ``delay`` seconds, or raises ``error``.
    """

    def __init__(  # noqa: PLR0913
        self,
        name: str,
        *,
        answer: str | None = "Fake answer",
        confidence: float = 0.9,
        error: Exception | None = None,
        delay: float = 0.0,
        load_failures: int = 0,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(retry_policy or RetryPolicy(max_attempts=3, base_delay=0))
        self.name = name
        self.answer_text = answer
        self.confidence = confidence
        self.error = error
        self.delay = delay
        self.load_failures = load_failures
        self.load_calls = 0
        self.requests: list[EngineRequest] = []
        self.closed = False

    async def load(self) -> None:
        self.load_calls += 1
        if self.load_calls <= self.load_failures:
            msg = f"load failure {self.load_calls}"
            raise RuntimeError(msg)

    async def answer(self, request: EngineRequest) -> EngineSuccess:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return EngineSuccess(
            correlation_id=request.correlation_id,
            answer=self.answer_text,
            confidence=self.confidence,
            matched_entries=tuple(
                (match.entry_id, match.score) for match in request.matches
            ),
        )

    async def close(self) -> None:
        self.closed = True


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


def create_mock_chat_response(content: str | None) -> Mock:
    """Create a mock OpenAI chat completion response.

    Args:
        content: The content for the chat completion response.

    Returns:
        Mock object representing OpenAI chat completion response.
    """
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    return mock_response


@pytest.fixture
def openai_embeddings_api_mock():
    """Base fixture that patches OpenAI embeddings.create method.

    Returns the mock object directly without any pre-configuration.
    """
    with patch("openai.resources.embeddings.Embeddings.create") as mock_create:
        yield mock_create


@pytest.fixture
def openai_embeddings_factory(openai_embeddings_api_mock):
    """Factory for creating OpenAI embeddings API mocks with different scenarios."""

    def _create_mock(  # noqa: ANN202
        scenario="single_success",
        embeddings=None,
        error_message="API Error",
    ):
        """Create a mock based on scenario type.

        Args:
            scenario: Type of mock ('single_success', 'batch_success', 'error',
                'multiple_batches')
            embeddings: Custom embeddings to return, or None for defaults
            error_message: Custom error message for error scenarios
        """
        openai_embeddings_api_mock.reset_mock()
        openai_embeddings_api_mock.side_effect = None
        openai_embeddings_api_mock.return_value = None

        if scenario == "single_success":
            mock_embedding = embeddings or [0.1, 0.2, 0.3, 0.4, 0.5]
            mock_response = create_mock_openai_response([mock_embedding])
            openai_embeddings_api_mock.return_value = mock_response
        elif scenario == "batch_success":
            mock_embeddings = embeddings or [
                [0.1, 0.2, 0.3],
                [0.4, 0.5, 0.6],
                [0.7, 0.8, 0.9],
            ]
            mock_response = create_mock_openai_response(mock_embeddings)
            openai_embeddings_api_mock.return_value = mock_response
        elif scenario == "error":
            openai_embeddings_api_mock.side_effect = Exception(error_message)
        elif scenario == "multiple_batches":
            mock_response1 = create_mock_openai_response([[0.1, 0.2], [0.3, 0.4]])
            mock_response2 = create_mock_openai_response([[0.5, 0.6], [0.7, 0.8]])
            openai_embeddings_api_mock.side_effect = [mock_response1, mock_response2]

        return openai_embeddings_api_mock

    return _create_mock


@pytest.fixture
def embedding_service_factory():
    """Factory for creating EmbeddingService instances with different configurations."""

    def _create_service(api_key=None, model=None, cache_size=None):  # noqa: ANN202
        api_key = api_key or TestConstants.TEST_API_KEY
        return EmbeddingService(
            api_key=api_key,
            model=model or TestConstants.TEST_OPENAI_MODEL,
            cache_size=cache_size,
        )

    return _create_service


@pytest.fixture
def embedding_service(embedding_service_factory):
    """Default EmbeddingService with test API key for most tests."""
    return embedding_service_factory()


@pytest.fixture(scope="session")
def mock_embedding_service():
    return MockEmbeddingService()


@pytest.fixture
def mock_chat_response_factory():
    """Factory for chat completion responses with the given content."""
    return create_mock_chat_response


@pytest.fixture
def mock_async_openai_client(mock_chat_response_factory):
    """AsyncOpenAI stand-in with awaitable chat, models and close."""
    client = Mock()
    client.chat.completions.create = AsyncMock(
        return_value=mock_chat_response_factory(
            "I have worked with React hooks for six years."
        )
    )
    client.models.retrieve = AsyncMock(return_value=Mock(id="gpt-test"))
    client.close = AsyncMock()
    return client


@pytest.fixture
def sample_sections():
    return SAMPLE_SECTIONS


@pytest.fixture
def knowledge_base(sample_sections) -> KnowledgeBase:
    return KnowledgeBase.from_mapping({"sections": sample_sections})


@pytest.fixture
def entry_factory():
    """Factory for KnowledgeEntry instances with sensible defaults."""

    def _create_entry(entry_id: str = "skills_python", **kwargs) -> KnowledgeEntry:
        kwargs.setdefault("category", entry_id.split("_", 1)[0])
        kwargs.setdefault("responses", {"developer": f"Text for {entry_id}"})
        return KnowledgeEntry(id=entry_id, **kwargs)

    return _create_entry


@pytest.fixture
def retrieval_engine(knowledge_base) -> RetrievalEngine:
    return RetrievalEngine(knowledge_base)


@pytest.fixture
def conversation_manager() -> ConversationManager:
    return ConversationManager(
        max_turns=TestConstants.MAX_TURNS,
        context_window=TestConstants.CONTEXT_WINDOW,
    )


@pytest.fixture
def fallback_handler(conversation_manager) -> FallbackHandler:
    return FallbackHandler(
        conversation_manager,
        contact_email=TestConstants.CONTACT_EMAIL,
        persona=TestConstants.PERSONA_NAME,
    )


@pytest.fixture
def fake_engine_factory():
    """Factory for FakeEngine instances."""

    def _create_engine(name: str = "extractive", **kwargs) -> FakeEngine:
        return FakeEngine(name, **kwargs)

    return _create_engine


@pytest_asyncio.fixture
async def channel_factory():
    """Factory for engine channels that are terminated after the test."""
    channels: list[EngineChannel] = []

    def _create_channel(
        worker: EngineWorker,
        timeout: float = TestConstants.QUERY_TIMEOUT,
        init_timeout: float = TestConstants.INIT_TIMEOUT,
    ) -> EngineChannel:
        channel = EngineChannel(worker, timeout=timeout, init_timeout=init_timeout)
        channels.append(channel)
        return channel

    yield _create_channel

    for channel in channels:
        await channel.terminate()


@pytest_asyncio.fixture
async def orchestrator_factory(channel_factory, fake_engine_factory):
    """Factory for orchestrators over fake engines, cleaned up after the test.

    ``engines`` maps engine names to FakeEngine keyword arguments.
    """
    orchestrators: list[DualEngineOrchestrator] = []

    def _create_orchestrator(
        engines: dict[str, dict] | None = None,
        retrieval: RetrievalEngine | None = None,
        **kwargs,
    ) -> DualEngineOrchestrator:
        engines = engines if engines is not None else {"extractive": {}}
        channels = [
            channel_factory(fake_engine_factory(name, **options))
            for name, options in engines.items()
        ]
        kwargs.setdefault("primary_engine", next(iter(engines), "extractive"))
        kwargs.setdefault("fallback_enabled", True)
        kwargs.setdefault("ab_testing_enabled", False)
        kwargs.setdefault("ab_testing_ratio", 0.5)
        kwargs.setdefault("rng", random.Random(0))  # noqa: S311
        kwargs.setdefault("events", EventEmitter())
        orchestrator = DualEngineOrchestrator(channels, retrieval, **kwargs)
        orchestrators.append(orchestrator)
        return orchestrator

    yield _create_orchestrator

    for orchestrator in orchestrators:
        await orchestrator.cleanup()


@pytest.fixture
def chat_session_factory(orchestrator_factory, retrieval_engine):
    """Factory for chat sessions over fake engines and the sample knowledge base."""

    def _create_session(
        engines: dict[str, dict] | None = None, **kwargs
    ) -> ChatSession:
        orchestrator = orchestrator_factory(engines, retrieval_engine, **kwargs)
        conversation = ConversationManager(
            max_turns=TestConstants.MAX_TURNS,
            context_window=TestConstants.CONTEXT_WINDOW,
        )
        fallback = FallbackHandler(
            conversation,
            contact_email=TestConstants.CONTACT_EMAIL,
            persona=TestConstants.PERSONA_NAME,
        )
        return ChatSession(
            orchestrator,
            retrieval_engine,
            conversation=conversation,
            fallback=fallback,
            cache=BoundedCache(10),
        )

    return _create_session
