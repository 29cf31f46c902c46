"""Messages exchanged between the orchestrator and engine workers.

Every message is an immutable dataclass. Responses coming back from an engine
are checked by :func:`validate_response` before anything else looks at them.
"""

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ..errors import EngineError
from ..models import ConversationTurn, ResponseStyle, RetrievalMatch


@dataclass(frozen=True)
class EngineRequest:
    correlation_id: str
    message: str
    style: ResponseStyle
    context: tuple[ConversationTurn, ...] = ()
    matches: tuple[RetrievalMatch, ...] = ()


@dataclass(frozen=True)
class EngineSuccess:
    correlation_id: str
    answer: str | None
    confidence: float
    matched_entries: tuple[tuple[str, float], ...] = ()
    processing_time_ms: float = 0.0


@dataclass(frozen=True)
class EngineFailure:
    correlation_id: str
    error: str


@dataclass(frozen=True)
class EngineReady:
    """One-time readiness signal sent after model loading."""

    success: bool
    error: str | None = None


@dataclass(frozen=True)
class InitializeSignal:
    pass


@dataclass(frozen=True)
class CleanupSignal:
    pass


EngineResponse = EngineSuccess | EngineFailure | EngineReady

_RESPONSE_TYPES: dict[str, type] = {
    "success": EngineSuccess,
    "failure": EngineFailure,
    "ready": EngineReady,
}


def _require_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        msg = f"Engine response field {key!r} must be a non-empty string"
        raise EngineError(msg)
    return value


def _validate_success(message: EngineSuccess) -> EngineSuccess:
    if message.answer is not None and not isinstance(message.answer, str):
        msg = "Engine answer must be a string or None"
        raise EngineError(msg)
    if isinstance(message.confidence, bool) or not isinstance(
        message.confidence, int | float
    ):
        msg = "Engine confidence must be a number"
        raise EngineError(msg)
    if not 0.0 <= message.confidence <= 1.0:
        msg = f"Engine confidence out of range: {message.confidence}"
        raise EngineError(msg)
    for item in message.matched_entries:
        if (
            not isinstance(item, tuple)
            or len(item) != 2  # noqa: PLR2004
            or not isinstance(item[0], str)
        ):
            msg = f"Malformed matched entry: {item!r}"
            raise EngineError(msg)
    return message


def _from_mapping(payload: Mapping[str, Any]) -> EngineResponse:
    kind = payload.get("type")
    if kind == "ready":
        error = payload.get("error")
        return EngineReady(
            success=bool(payload.get("success")),
            error=None if error is None else str(error),
        )
    if kind == "failure":
        return EngineFailure(
            correlation_id=_require_str(payload, "correlation_id"),
            error=str(payload.get("error") or "Unknown engine error"),
        )
    if kind == "success":
        try:
            matched = tuple(
                (str(entry_id), float(similarity))
                for entry_id, similarity in payload.get("matched_entries") or ()
            )
            return EngineSuccess(
                correlation_id=_require_str(payload, "correlation_id"),
                answer=payload.get("answer"),
                confidence=float(payload.get("confidence", 0.0)),
                matched_entries=matched,
                processing_time_ms=float(payload.get("processing_time_ms", 0.0)),
            )
        except (TypeError, ValueError) as exc:
            msg = f"Malformed success response: {exc}"
            raise EngineError(msg) from exc
    msg = f"Unknown engine response type: {kind!r}"
    raise EngineError(msg)


def validate_response(payload: object) -> EngineResponse:
    """Turn an inbound engine payload into a typed response.

    Accepts a response dataclass or a mapping with a ``type`` key of
    ``success``, ``failure`` or ``ready``.

    Returns:
        The validated response.

    Raises:
        EngineError: If the payload is malformed.
    """
    if isinstance(payload, Mapping):
        message = _from_mapping(payload)
    elif dataclasses.is_dataclass(payload) and isinstance(
        payload, tuple(_RESPONSE_TYPES.values())
    ):
        message = payload
    else:
        msg = f"Unsupported engine response: {type(payload).__name__}"
        raise EngineError(msg)

    if isinstance(message, EngineSuccess):
        return _validate_success(message)
    if isinstance(message, EngineFailure) and not message.correlation_id:
        msg = "Failure response without correlation id"
        raise EngineError(msg)
    return message
