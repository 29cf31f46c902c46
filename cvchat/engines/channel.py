"""Request/response channel between the orchestrator and one engine worker."""

import asyncio
import contextlib
import uuid
from collections.abc import Mapping, Sequence

from ..config import config
from ..errors import EngineError, EngineTimeoutError
from ..models import ConversationTurn, ResponseStyle, RetrievalMatch
from .base import EngineWorker
from .messages import (
    CleanupSignal,
    EngineFailure,
    EngineReady,
    EngineRequest,
    EngineSuccess,
    InitializeSignal,
    validate_response,
)

logger = config.get_logger(__name__)

SHUTDOWN_GRACE_SECONDS = 1.0


class EngineChannel:
    """Owns one worker task and matches its responses to pending requests.

    Every request carries a correlation id. Responses whose id is no longer
    pending (timed out or already answered) are discarded.
    """

    def __init__(
        self,
        worker: EngineWorker,
        timeout: float | None = None,
        init_timeout: float | None = None,
    ) -> None:
        """Initialize EngineChannel.

        Args:
            worker: Engine worker to drive.
            timeout: Seconds to wait for a query response.
            init_timeout: Seconds to wait for the readiness signal.
        """
        self.worker = worker
        self.name = worker.name
        self.timeout = (
            timeout if timeout is not None else config.ENGINE_TIMEOUT_SECONDS
        )
        self.init_timeout = (
            init_timeout
            if init_timeout is not None
            else config.ENGINE_INIT_TIMEOUT_SECONDS
        )
        self.available = False
        self.init_error: str | None = None
        self.discarded_responses = 0
        self._pending: dict[str, asyncio.Future[EngineSuccess | EngineFailure]] = {}
        self._ready: asyncio.Future[EngineReady] | None = None
        self._worker_task: asyncio.Task[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._terminated = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def start(self) -> bool:
        """Start the worker and wait for its readiness signal.

        Returns:
            bool: True if the engine reported a successful load in time.
        """
        if self._worker_task is not None:
            return self.available

        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._worker_task = asyncio.create_task(
            self.worker.run(), name=f"engine-{self.name}"
        )
        self._reader_task = asyncio.create_task(
            self._read_responses(), name=f"engine-{self.name}-reader"
        )
        await self.worker.inbox.put(InitializeSignal())

        try:
            ready = await asyncio.wait_for(
                asyncio.shield(self._ready), timeout=self.init_timeout
            )
        except TimeoutError:
            self.init_error = (
                f"Engine {self.name} not ready after {self.init_timeout}s"
            )
            logger.error("Engine %s initialization timed out", self.name)
            return False

        self.available = ready.success and not self._terminated
        self.init_error = ready.error
        if self.available:
            logger.info("Engine %s is ready", self.name)
        else:
            logger.warning("Engine %s failed to start: %s", self.name, ready.error)
        return self.available

    async def request(
        self,
        message: str,
        style: ResponseStyle,
        context: Sequence[ConversationTurn] = (),
        matches: Sequence[RetrievalMatch] = (),
        timeout: float | None = None,
    ) -> EngineSuccess:
        """Send one query and wait for the matching response.

        Returns:
            EngineSuccess: The engine's answer.

        Raises:
            EngineError: If the engine is unavailable or reports a failure.
            EngineTimeoutError: If no response arrives in time.
        """
        if self._terminated or not self.available:
            msg = f"Engine {self.name} is not available"
            raise EngineError(msg, engine=self.name)

        correlation_id = f"{self.name}-{uuid.uuid4().hex}"
        future: asyncio.Future[EngineSuccess | EngineFailure] = (
            asyncio.get_running_loop().create_future()
        )
        self._pending[correlation_id] = future
        request = EngineRequest(
            correlation_id=correlation_id,
            message=message,
            style=style,
            context=tuple(context),
            matches=tuple(matches),
        )
        wait = self.timeout if timeout is None else timeout

        try:
            await self.worker.inbox.put(request)
            response = await asyncio.wait_for(future, timeout=wait)
        except TimeoutError as exc:
            msg = f"Engine {self.name} timed out after {wait}s"
            raise EngineTimeoutError(msg, engine=self.name) from exc
        finally:
            self._pending.pop(correlation_id, None)

        if isinstance(response, EngineFailure):
            raise EngineError(response.error, engine=self.name)
        return response

    async def _read_responses(self) -> None:
        while True:
            payload = await self.worker.outbox.get()
            try:
                message = validate_response(payload)
            except EngineError as exc:
                logger.exception("Engine %s sent a malformed response", self.name)
                self._fail_pending(payload, exc)
                continue

            if isinstance(message, EngineReady):
                if self._ready is not None and not self._ready.done():
                    self._ready.set_result(message)
                continue

            future = self._pending.get(message.correlation_id)
            if future is None or future.done():
                self.discarded_responses += 1
                logger.warning(
                    "Discarding stale response %s from engine %s",
                    message.correlation_id,
                    self.name,
                )
                continue
            future.set_result(message)

    def _fail_pending(self, payload: object, error: EngineError) -> None:
        """Fail the request a malformed response belongs to, if still pending."""
        if isinstance(payload, Mapping):
            correlation_id = payload.get("correlation_id")
        else:
            correlation_id = getattr(payload, "correlation_id", None)
        if not isinstance(correlation_id, str):
            return

        future = self._pending.get(correlation_id)
        if future is None or future.done():
            return
        failure = EngineError(str(error), engine=self.name)
        failure.__cause__ = error
        future.set_exception(failure)

    async def terminate(self) -> None:
        """Stop the worker and fail any request still waiting for it.

        Safe to call at any time, including more than once.
        """
        if self._terminated:
            return
        self._terminated = True
        self.available = False

        for correlation_id, future in list(self._pending.items()):
            if not future.done():
                future.set_exception(
                    EngineError(
                        f"Engine {self.name} terminated during {correlation_id}",
                        engine=self.name,
                    )
                )
        self._pending.clear()
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(
                EngineReady(success=False, error=f"Engine {self.name} terminated")
            )

        if self._worker_task is not None and not self._worker_task.done():
            await self.worker.inbox.put(CleanupSignal())
            try:
                await asyncio.wait_for(self._worker_task, SHUTDOWN_GRACE_SECONDS)
            except TimeoutError:
                logger.warning("Engine %s did not stop in time", self.name)
                self._worker_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._worker_task
            except Exception:
                logger.exception("Engine %s stopped with an error", self.name)
        if self._reader_task is not None:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
        logger.info("Engine %s terminated", self.name)
