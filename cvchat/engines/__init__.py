"""Engine contract, message channel and the two bundled engines."""

from .base import EngineWorker
from .channel import EngineChannel
from .extractive import ExtractiveEngine
from .generative import GenerativeEngine, clean_generated_text
from .messages import (
    CleanupSignal,
    EngineFailure,
    EngineReady,
    EngineRequest,
    EngineSuccess,
    InitializeSignal,
    validate_response,
)

__all__ = [
    "CleanupSignal",
    "EngineChannel",
    "EngineFailure",
    "EngineReady",
    "EngineRequest",
    "EngineSuccess",
    "EngineWorker",
    "ExtractiveEngine",
    "GenerativeEngine",
    "InitializeSignal",
    "clean_generated_text",
    "validate_response",
]
