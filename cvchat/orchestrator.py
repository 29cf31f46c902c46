"""Dual-engine orchestration with infrastructure fallback and A/B assignment."""

import asyncio
import random
import time
import uuid
from collections.abc import Sequence
from dataclasses import asdict
from typing import Any

import numpy as np

from .config import config
from .engines.channel import EngineChannel
from .errors import (
    AllEnginesFailedError,
    EngineError,
    InvalidInputError,
    ModelLoadFailureError,
)
from .events import EngineEvent, EventEmitter
from .models import (
    ABTally,
    ABTestAssignment,
    ConversationTurn,
    EngineMetrics,
    EngineQueryOutcome,
    ResponseStyle,
    RetrievalMatch,
)
from .retrieval import RetrievalEngine

logger = config.get_logger(__name__)

QUERY_PREVIEW_LENGTH = 50


class DualEngineOrchestrator:
    """Routes each query to one engine and falls back to the other on failure.

    Engine availability, metrics and the A/B assignment are owned by the
    instance; callers read them through snapshots only.
    """

    def __init__(  # noqa: PLR0913
        self,
        channels: Sequence[EngineChannel],
        retrieval: RetrievalEngine | None = None,
        *,
        primary_engine: str | None = None,
        fallback_enabled: bool | None = None,
        ab_testing_enabled: bool | None = None,
        ab_testing_ratio: float | None = None,
        rng: random.Random | None = None,
        events: EventEmitter | None = None,
        session_id: str | None = None,
    ) -> None:
        """Initialize DualEngineOrchestrator.

        Args:
            channels: Engine channels in preference order.
            retrieval: Used when process_query is called without matches.
            primary_engine: Engine preferred when A/B testing is off.
            fallback_enabled: Retry a failed query on another engine.
            ab_testing_enabled: Pin the session to a randomly chosen engine.
            ab_testing_ratio: Probability of assigning the challenger engine.
            rng: Random source for A/B assignment.
            events: Observer list for lifecycle events.
            session_id: Conversation the A/B assignment belongs to.

        Raises:
            InvalidInputError: If two channels share a name.
        """
        self._channels: dict[str, EngineChannel] = {}
        for channel in channels:
            if channel.name in self._channels:
                msg = f"Duplicate engine name: {channel.name}"
                raise InvalidInputError(msg)
            self._channels[channel.name] = channel

        self.retrieval = retrieval
        self.primary_engine = (primary_engine or config.PRIMARY_ENGINE).lower()
        self.fallback_enabled = (
            config.FALLBACK_ENABLED if fallback_enabled is None else fallback_enabled
        )
        self.ab_testing_enabled = (
            config.AB_TESTING_ENABLED
            if ab_testing_enabled is None
            else ab_testing_enabled
        )
        ratio = (
            config.AB_TESTING_RATIO if ab_testing_ratio is None else ab_testing_ratio
        )
        self.ab_testing_ratio = self._check_ratio(ratio)
        self.rng = rng or random.Random()  # noqa: S311
        self.events = events or EventEmitter()
        self.session_id = session_id or f"session_{uuid.uuid4().hex}"

        self.metrics: dict[str, EngineMetrics] = {
            name: EngineMetrics() for name in self._channels
        }
        self.fallback_count = 0
        self.ab_assignment: ABTestAssignment | None = None
        self.initialized = False
        self._available: list[str] = []

    @staticmethod
    def _check_ratio(ratio: float) -> float:
        if not 0.0 <= ratio <= 1.0:
            msg = f"A/B testing ratio must be in [0, 1], got {ratio}"
            raise InvalidInputError(msg)
        return float(ratio)

    @property
    def available_engines(self) -> list[str]:
        return list(self._available)

    @property
    def engine_names(self) -> list[str]:
        return list(self._channels)

    def is_engine_available(self, engine: str) -> bool:
        return engine in self._available

    async def initialize(self) -> dict[str, Any]:
        """Start every engine channel and record which became available.

        Returns:
            dict[str, Any]: Success flag, available engines and per-engine
                errors.

        Raises:
            ModelLoadFailureError: If no engine could be started.
        """
        names = list(self._channels)
        results = await asyncio.gather(
            *(self._channels[name].start() for name in names)
        )

        errors: dict[str, str] = {}
        self._available = []
        for name, ready in zip(names, results, strict=True):
            if ready:
                self._available.append(name)
                self.events.emit(EngineEvent.ENGINE_READY, {"engine": name})
            else:
                errors[name] = self._channels[name].init_error or "not ready"

        self.initialized = bool(self._available)
        if not self.initialized:
            msg = f"No engine could be initialized: {errors}"
            raise ModelLoadFailureError(msg)

        if self.ab_testing_enabled:
            self._assign_ab_engine()

        logger.info(
            "Engines available: %s (primary %s)", self._available, self.primary_engine
        )
        return {
            "success": True,
            "available_engines": self.available_engines,
            "errors": errors,
        }

    def _challenger(self) -> str | None:
        for name in self._available:
            if name != self.primary_engine:
                return name
        return None

    def _assign_ab_engine(self) -> None:
        challenger = self._challenger()
        if challenger is None or len(self._available) < 2:  # noqa: PLR2004
            self.ab_assignment = None
            return
        baseline = (
            self.primary_engine
            if self.primary_engine in self._available
            else self._available[0]
        )
        engine = challenger if self.rng.random() < self.ab_testing_ratio else baseline
        self.ab_assignment = ABTestAssignment(session_id=self.session_id, engine=engine)
        logger.info("A/B test assigned engine %s to %s", engine, self.session_id)
        self.events.emit(
            EngineEvent.AB_TEST_ASSIGNED,
            {"engine": engine, "session_id": self.ab_assignment.session_id},
        )

    def select_engine(self) -> str:
        """Pick the engine for the next query.

        Returns:
            str: The A/B assignment, else the primary engine, else any
                available engine.

        Raises:
            AllEnginesFailedError: If no engine is available.
        """
        if (
            self.ab_testing_enabled
            and self.ab_assignment is not None
            and self.ab_assignment.engine in self._available
        ):
            return self.ab_assignment.engine
        if self.primary_engine in self._available:
            return self.primary_engine
        if self._available:
            return self._available[0]
        msg = "No engine is available"
        raise AllEnginesFailedError(msg)

    async def process_query(  # noqa: PLR0913
        self,
        message: str,
        context: Sequence[ConversationTurn] = (),
        style: ResponseStyle | str = ResponseStyle.DEVELOPER,
        matches: Sequence[RetrievalMatch] | None = None,
        query_vector: np.ndarray | None = None,
    ) -> EngineQueryOutcome:
        """Dispatch a query to the selected engine with infrastructure fallback.

        Args:
            message: User question.
            context: Recent conversation turns sent to the engine.
            style: Response style.
            matches: Retrieved entries. Retrieved here when None.
            query_vector: Query embedding for retrieval, if any.

        Returns:
            EngineQueryOutcome: The engine's answer and bookkeeping.

        Raises:
            InvalidInputError: If the message is empty or not a string.
            EngineError: If the orchestrator was not initialized.
            AllEnginesFailedError: If every attempted engine failed.
        """
        if not isinstance(message, str) or not message.strip():
            msg = "Message must be a non-empty string"
            raise InvalidInputError(msg)
        if not self.initialized:
            msg = "Orchestrator is not initialized"
            raise EngineError(msg)

        resolved_style = ResponseStyle.coerce(style)
        if matches is None:
            matches = (
                self.retrieval.search(message, query_vector)
                if self.retrieval is not None
                else []
            )

        query_id = f"query_{uuid.uuid4().hex}"
        started = time.perf_counter()
        selected = self.select_engine()
        self.events.emit(
            EngineEvent.QUERY_STARTED,
            {
                "query_id": query_id,
                "engine": selected,
                "message": message[:QUERY_PREVIEW_LENGTH],
            },
        )

        try:
            response = await self._channels[selected].request(
                message, resolved_style, context, matches
            )
        except EngineError as exc:
            self.metrics[selected].error_count += 1
            logger.warning("Engine %s failed on %s: %s", selected, query_id, exc)
            if self.fallback_enabled and self._fallback_for(selected) is not None:
                return await self._handle_fallback(
                    query_id, selected, exc, message, resolved_style, context, matches
                )
            self.events.emit(
                EngineEvent.ALL_ENGINES_FAILED,
                {"query_id": query_id, "errors": {selected: str(exc)}},
            )
            msg = f"All engines failed. {selected}: {exc}"
            raise AllEnginesFailedError(
                msg, last_error=exc, errors={selected: str(exc)}
            ) from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        outcome = EngineQueryOutcome(
            answer=response.answer,
            confidence=response.confidence,
            matched_entries=response.matched_entries,
            processing_time_ms=elapsed_ms,
            engine_used=selected,
            query_id=query_id,
        )
        self._record(selected, outcome, message)
        self.events.emit(
            EngineEvent.QUERY_COMPLETED,
            {
                "query_id": query_id,
                "engine": selected,
                "confidence": outcome.confidence,
                "processing_time_ms": elapsed_ms,
            },
        )
        return outcome

    def _fallback_for(self, failed: str) -> str | None:
        for name in self._available:
            if name != failed:
                return name
        return None

    async def _handle_fallback(  # noqa: PLR0913, PLR0917
        self,
        query_id: str,
        failed: str,
        original_error: EngineError,
        message: str,
        style: ResponseStyle,
        context: Sequence[ConversationTurn],
        matches: Sequence[RetrievalMatch],
    ) -> EngineQueryOutcome:
        fallback = self._fallback_for(failed)
        if fallback is None:
            msg = f"No fallback engine for {failed}"
            raise AllEnginesFailedError(
                msg, last_error=original_error, errors={failed: str(original_error)}
            ) from original_error

        self.fallback_count += 1
        self.metrics[failed].fallback_count += 1
        self.events.emit(
            EngineEvent.FALLBACK_TRIGGERED,
            {
                "query_id": query_id,
                "primary_engine": failed,
                "fallback_engine": fallback,
                "original_error": str(original_error),
            },
        )

        started = time.perf_counter()
        try:
            response = await self._channels[fallback].request(
                message, style, context, matches
            )
        except EngineError as exc:
            self.metrics[fallback].error_count += 1
            errors = {failed: str(original_error), fallback: str(exc)}
            self.events.emit(
                EngineEvent.ALL_ENGINES_FAILED, {"query_id": query_id, "errors": errors}
            )
            logger.exception("All engines failed for %s", query_id)
            msg = (
                f"All engines failed. {failed}: {original_error}, {fallback}: {exc}"
            )
            raise AllEnginesFailedError(msg, last_error=exc, errors=errors) from exc

        outcome = EngineQueryOutcome(
            answer=response.answer,
            confidence=response.confidence,
            matched_entries=response.matched_entries,
            processing_time_ms=(time.perf_counter() - started) * 1000,
            engine_used=fallback,
            fallback_used=True,
            original_error=str(original_error),
            query_id=query_id,
        )
        self._record(fallback, outcome, message, is_fallback=True)
        self.events.emit(
            EngineEvent.QUERY_COMPLETED,
            {
                "query_id": query_id,
                "engine": fallback,
                "confidence": outcome.confidence,
                "processing_time_ms": outcome.processing_time_ms,
                "fallback_used": True,
            },
        )
        return outcome

    def _record(
        self,
        engine: str,
        outcome: EngineQueryOutcome,
        message: str,
        *,
        is_fallback: bool = False,
    ) -> None:
        metrics = self.metrics[engine]
        metrics.record(outcome.processing_time_ms, outcome.confidence)
        self.events.emit(
            EngineEvent.METRICS_UPDATED,
            {"engine": engine, "metrics": asdict(metrics), "is_fallback": is_fallback},
        )

        if self.ab_testing_enabled and self.ab_assignment is not None:
            answer_length = len(outcome.answer or "")
            self.ab_assignment.tallies.setdefault(engine, ABTally()).record(
                outcome.confidence, outcome.processing_time_ms, answer_length
            )
            self.ab_assignment.results.append({
                "query_id": outcome.query_id,
                "engine": engine,
                "confidence": outcome.confidence,
                "processing_time_ms": outcome.processing_time_ms,
                "query_length": len(message),
                "response_length": answer_length,
                "matched_entries": len(outcome.matched_entries),
            })

    def switch_primary_engine(self, engine: str) -> None:
        """Make ``engine`` the primary engine.

        Raises:
            InvalidInputError: If the engine is not available.
        """
        if engine not in self._available:
            msg = f"Engine {engine} is not available"
            raise InvalidInputError(msg)
        previous = self.primary_engine
        self.primary_engine = engine
        logger.info("Primary engine changed from %s to %s", previous, engine)
        self.events.emit(
            EngineEvent.PRIMARY_ENGINE_CHANGED,
            {"previous": previous, "current": engine},
        )

    def set_ab_testing(self, enabled: bool, ratio: float = 0.5) -> None:  # noqa: FBT001
        """Turn A/B testing on or off; enabling it draws a new assignment."""
        self.ab_testing_ratio = self._check_ratio(ratio)
        self.ab_testing_enabled = enabled
        if enabled:
            self._assign_ab_engine()
        else:
            self.ab_assignment = None

    def start_session(self, session_id: str) -> None:
        """Bind the orchestrator to a conversation.

        Once engines are initialized, a new session draws a new A/B
        assignment.

        Args:
            session_id: Id of the conversation now being served.
        """
        self.session_id = session_id
        if self.initialized and self.ab_testing_enabled:
            self._assign_ab_engine()

    def metrics_snapshot(self) -> dict[str, Any]:
        """Copy of all engine metrics plus the comparison summary.

        Returns:
            dict[str, Any]: Per-engine metrics, fallback total and comparison.
        """
        engines = {
            name: {**asdict(metrics), "success_rate": metrics.success_rate}
            for name, metrics in self.metrics.items()
        }
        return {
            "engines": engines,
            "fallbacks": self.fallback_count,
            "comparison": self.comparison_metrics(),
        }

    def comparison_metrics(self) -> dict[str, Any]:
        """Head-to-head comparison of the first two engines.

        Returns:
            dict[str, Any]: Winners per dimension, or ``available: False``
                while either engine has no successful query.
        """
        names = list(self.metrics)[:2]
        if len(names) < 2 or any(  # noqa: PLR2004
            self.metrics[name].queries == 0 for name in names
        ):
            return {"available": False, "reason": "Insufficient data for comparison"}

        first, second = names
        a, b = self.metrics[first], self.metrics[second]
        total = a.queries + b.queries
        faster = a.average_latency_ms < b.average_latency_ms
        more_confident = a.average_confidence > b.average_confidence
        return {
            "available": True,
            "latency": {
                first: a.average_latency_ms,
                second: b.average_latency_ms,
                "winner": first if faster else second,
            },
            "confidence": {
                first: a.average_confidence,
                second: b.average_confidence,
                "winner": first if more_confident else second,
            },
            "reliability": {
                first: a.success_rate,
                second: b.success_rate,
                "winner": first if a.success_rate > b.success_rate else second,
            },
            "total_queries": total,
            "fallback_rate": self.fallback_count / total,
        }

    def ab_test_summary(self) -> dict[str, Any]:
        """Per-engine tallies collected while A/B testing.

        Returns:
            dict[str, Any]: ``available: False`` until results exist.
        """
        assignment = self.ab_assignment
        if not self.ab_testing_enabled or assignment is None or not assignment.results:
            return {"available": False}
        return {
            "available": True,
            "session_id": assignment.session_id,
            "assigned_engine": assignment.engine,
            "total_tests": len(assignment.results),
            "engines": {
                name: asdict(assignment.tallies.get(name, ABTally()))
                for name in self._channels
            },
        }

    async def cleanup(self) -> None:
        """Terminate every engine and reset availability and metrics."""
        await asyncio.gather(
            *(channel.terminate() for channel in self._channels.values())
        )
        self._available = []
        self.initialized = False
        self.ab_assignment = None
        self.metrics = {name: EngineMetrics() for name in self._channels}
        self.fallback_count = 0
        self.events.clear()
        logger.info("Orchestrator cleaned up.")
