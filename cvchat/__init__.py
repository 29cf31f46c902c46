"""CVChat - retrieval-augmented dual-engine profile assistant."""

from .cache import BoundedCache
from .conversation import ConversationManager
from .embeddings import EmbeddingService
from .errors import (
    AllEnginesFailedError,
    CVChatError,
    EngineError,
    EngineTimeoutError,
    InvalidInputError,
    ModelLoadFailureError,
)
from .events import EngineEvent, EventEmitter
from .fallback import FallbackHandler
from .knowledge import KnowledgeBase
from .models import (
    ChatResponse,
    ConversationTurn,
    EngineQueryOutcome,
    FallbackAction,
    KnowledgeEntry,
    ResponseStyle,
    RetrievalMatch,
)
from .orchestrator import DualEngineOrchestrator
from .prompts import PromptBuilder
from .retrieval import RetrievalEngine
from .retry import RetryPolicy, retry_with_policy
from .session import ChatSession, create_session
from .similarity import cosine_similarity

__all__ = [
    "AllEnginesFailedError",
    "BoundedCache",
    "CVChatError",
    "ChatResponse",
    "ChatSession",
    "ConversationManager",
    "ConversationTurn",
    "DualEngineOrchestrator",
    "EmbeddingService",
    "EngineError",
    "EngineEvent",
    "EngineQueryOutcome",
    "EngineTimeoutError",
    "EventEmitter",
    "FallbackAction",
    "FallbackHandler",
    "InvalidInputError",
    "KnowledgeBase",
    "KnowledgeEntry",
    "ModelLoadFailureError",
    "PromptBuilder",
    "ResponseStyle",
    "RetrievalEngine",
    "RetrievalMatch",
    "RetryPolicy",
    "cosine_similarity",
    "create_session",
    "retry_with_policy",
]
