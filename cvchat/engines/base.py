"""Base class for engines running as isolated asyncio tasks."""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import replace

from ..config import config
from ..errors import ModelLoadFailureError
from ..retry import RetryPolicy, retry_with_policy
from .messages import (
    CleanupSignal,
    EngineFailure,
    EngineReady,
    EngineRequest,
    EngineSuccess,
    InitializeSignal,
)

logger = config.get_logger(__name__)


class EngineWorker(ABC):
    """An engine that talks to the outside world only through two queues.

    The worker reads requests and signals from ``inbox`` and writes
    responses to ``outbox``. Nothing else touches its state while
    :meth:`run` is active.
    """

    name: str = "engine"

    def __init__(self, retry_policy: RetryPolicy | None = None) -> None:
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self.inbox: asyncio.Queue[object] = asyncio.Queue()
        self.outbox: asyncio.Queue[object] = asyncio.Queue()
        self.ready = False
        self._ready_sent = False

    @abstractmethod
    async def load(self) -> None:
        """Load models or clients. Called under the retry policy."""

    @abstractmethod
    async def answer(self, request: EngineRequest) -> EngineSuccess:
        """Produce a response for one request."""

    async def close(self) -> None:  # noqa: B027
        """Release resources. Safe to call more than once."""

    async def run(self) -> None:
        """Process inbox messages until a cleanup signal arrives."""
        logger.debug("Engine %s worker started", self.name)
        try:
            while True:
                message = await self.inbox.get()
                if isinstance(message, CleanupSignal):
                    break
                if isinstance(message, InitializeSignal):
                    await self._initialize()
                elif isinstance(message, EngineRequest):
                    await self.outbox.put(await self._handle(message))
                else:
                    logger.warning(
                        "Engine %s ignored message %s", self.name, type(message)
                    )
        finally:
            self.ready = False
            await self.close()
            logger.debug("Engine %s worker stopped", self.name)

    async def _initialize(self) -> None:
        if self._ready_sent:
            return
        try:
            await retry_with_policy(
                self.load, self.retry_policy, description=f"{self.name} model load"
            )
        except ModelLoadFailureError as exc:
            logger.exception("Engine %s failed to load", self.name)
            signal = EngineReady(success=False, error=str(exc))
        else:
            self.ready = True
            signal = EngineReady(success=True)
        self._ready_sent = True
        await self.outbox.put(signal)

    async def _handle(self, request: EngineRequest) -> EngineSuccess | EngineFailure:
        if not self.ready:
            return EngineFailure(
                correlation_id=request.correlation_id,
                error=f"Engine {self.name} is not ready",
            )
        started = time.perf_counter()
        try:
            response = await self.answer(request)
        except Exception as exc:
            logger.exception(
                "Engine %s failed on %s", self.name, request.correlation_id
            )
            return EngineFailure(correlation_id=request.correlation_id, error=str(exc))

        elapsed_ms = (time.perf_counter() - started) * 1000
        if response.processing_time_ms:
            return response
        return replace(response, processing_time_ms=elapsed_ms)
