"""Tests for dual-engine orchestration."""

import random

import pytest

from cvchat import (
    AllEnginesFailedError,
    DualEngineOrchestrator,
    EngineError,
    EngineEvent,
    EngineTimeoutError,
    InvalidInputError,
    ModelLoadFailureError,
)
from cvchat.engines import EngineChannel

BOTH_ENGINES = {"extractive": {"confidence": 0.9}, "generative": {"confidence": 0.6}}


def record_events(orchestrator, *events):
    recorded = []
    for event in events:
        orchestrator.events.on(
            event,
            lambda payload, name=event: recorded.append((str(name), payload)),
        )
    return recorded


@pytest.mark.asyncio
async def test_initialize_starts_all_engines(orchestrator_factory):
    orchestrator = orchestrator_factory(BOTH_ENGINES)
    recorded = record_events(orchestrator, EngineEvent.ENGINE_READY)

    result = await orchestrator.initialize()

    assert result == {
        "success": True,
        "available_engines": ["extractive", "generative"],
        "errors": {},
    }
    assert orchestrator.initialized
    assert [payload["engine"] for _, payload in recorded] == [
        "extractive",
        "generative",
    ]


@pytest.mark.asyncio
async def test_initialize_with_one_failing_engine(orchestrator_factory):
    orchestrator = orchestrator_factory({
        "extractive": {},
        "generative": {"load_failures": 10},
    })

    result = await orchestrator.initialize()

    assert result["available_engines"] == ["extractive"]
    assert "failed after 3 attempts" in result["errors"]["generative"]
    assert orchestrator.is_engine_available("extractive")
    assert not orchestrator.is_engine_available("generative")
    assert orchestrator.engine_names == ["extractive", "generative"]


@pytest.mark.asyncio
async def test_initialize_without_any_engine_raises(orchestrator_factory):
    orchestrator = orchestrator_factory({"extractive": {"load_failures": 10}})

    with pytest.raises(ModelLoadFailureError, match="No engine"):
        await orchestrator.initialize()

    assert not orchestrator.initialized


@pytest.mark.asyncio
async def test_process_query_uses_primary_engine(
    orchestrator_factory, retrieval_engine
):
    orchestrator = orchestrator_factory(BOTH_ENGINES, retrieval_engine)
    await orchestrator.initialize()
    recorded = record_events(
        orchestrator,
        EngineEvent.QUERY_STARTED,
        EngineEvent.METRICS_UPDATED,
        EngineEvent.QUERY_COMPLETED,
    )

    outcome = await orchestrator.process_query("react")

    assert outcome.engine_used == "extractive"
    assert outcome.answer == "Fake answer"
    assert outcome.confidence == 0.9
    assert not outcome.fallback_used
    assert outcome.original_error is None
    assert outcome.query_id.startswith("query_")
    assert outcome.processing_time_ms > 0
    assert outcome.matched_entry_ids == ["skills_react", "projects_design_system"]
    assert [name for name, _ in recorded] == [
        "query_started",
        "metrics_updated",
        "query_completed",
    ]
    assert recorded[0][1]["query_id"] == outcome.query_id
    assert recorded[2][1]["query_id"] == outcome.query_id
    assert orchestrator.metrics["extractive"].queries == 1
    assert orchestrator.metrics["generative"].queries == 0


@pytest.mark.asyncio
async def test_process_query_with_explicit_matches(orchestrator_factory):
    orchestrator = orchestrator_factory()
    await orchestrator.initialize()

    outcome = await orchestrator.process_query("react", matches=[])

    assert outcome.matched_entries == ()


@pytest.mark.asyncio
async def test_engine_failure_falls_back(orchestrator_factory):
    orchestrator = orchestrator_factory({
        "extractive": {"error": RuntimeError("index corrupted")},
        "generative": {"answer": "Generated answer", "confidence": 0.7},
    })
    await orchestrator.initialize()
    recorded = record_events(orchestrator, EngineEvent.FALLBACK_TRIGGERED)

    outcome = await orchestrator.process_query("react")

    assert outcome.engine_used == "generative"
    assert outcome.answer == "Generated answer"
    assert outcome.fallback_used
    assert "index corrupted" in outcome.original_error
    assert orchestrator.fallback_count == 1
    assert orchestrator.metrics["extractive"].error_count == 1
    assert orchestrator.metrics["extractive"].fallback_count == 1
    assert orchestrator.metrics["generative"].queries == 1
    [(_, payload)] = recorded
    assert payload["primary_engine"] == "extractive"
    assert payload["fallback_engine"] == "generative"


@pytest.mark.asyncio
async def test_engine_timeout_falls_back(orchestrator_factory):
    orchestrator = orchestrator_factory({
        "extractive": {"delay": 0.5},
        "generative": {"answer": "Quick answer"},
    })
    await orchestrator.initialize()

    outcome = await orchestrator.process_query("react")

    assert outcome.engine_used == "generative"
    assert "timed out" in outcome.original_error


@pytest.mark.asyncio
async def test_all_engines_failed(orchestrator_factory):
    orchestrator = orchestrator_factory({
        "extractive": {"error": RuntimeError("first failure")},
        "generative": {"error": RuntimeError("second failure")},
    })
    await orchestrator.initialize()
    recorded = record_events(orchestrator, EngineEvent.ALL_ENGINES_FAILED)

    with pytest.raises(AllEnginesFailedError) as exc_info:
        await orchestrator.process_query("react")

    error = exc_info.value
    assert set(error.errors) == {"extractive", "generative"}
    assert "second failure" in str(error.last_error)
    assert len(recorded) == 1
    assert orchestrator.metrics["generative"].error_count == 1


@pytest.mark.asyncio
async def test_fallback_disabled_raises_on_first_failure(orchestrator_factory):
    orchestrator = orchestrator_factory(
        {
            "extractive": {"error": RuntimeError("failure")},
            "generative": {},
        },
        fallback_enabled=False,
    )
    await orchestrator.initialize()

    with pytest.raises(AllEnginesFailedError) as exc_info:
        await orchestrator.process_query("react")

    assert isinstance(exc_info.value.last_error, EngineError)
    assert orchestrator.fallback_count == 0
    assert orchestrator.metrics["generative"].queries == 0


@pytest.mark.asyncio
async def test_single_engine_failure_is_terminal(orchestrator_factory):
    orchestrator = orchestrator_factory({"extractive": {"delay": 0.5}})
    await orchestrator.initialize()

    with pytest.raises(AllEnginesFailedError) as exc_info:
        await orchestrator.process_query("react")

    assert isinstance(exc_info.value.last_error, EngineTimeoutError)


@pytest.mark.asyncio
async def test_process_query_before_initialize(orchestrator_factory):
    orchestrator = orchestrator_factory()

    with pytest.raises(EngineError, match="not initialized"):
        await orchestrator.process_query("react")


@pytest.mark.parametrize("message", ["", "   ", None])
@pytest.mark.asyncio
async def test_process_query_rejects_empty_message(orchestrator_factory, message):
    orchestrator = orchestrator_factory()
    await orchestrator.initialize()

    with pytest.raises(InvalidInputError):
        await orchestrator.process_query(message)


@pytest.mark.asyncio
async def test_primary_unavailable_uses_other_engine(orchestrator_factory):
    orchestrator = orchestrator_factory(
        {"extractive": {}, "generative": {"load_failures": 10}},
        primary_engine="generative",
    )
    await orchestrator.initialize()

    assert orchestrator.select_engine() == "extractive"


@pytest.mark.asyncio
async def test_switch_primary_engine(orchestrator_factory):
    orchestrator = orchestrator_factory(BOTH_ENGINES)
    await orchestrator.initialize()
    recorded = record_events(orchestrator, EngineEvent.PRIMARY_ENGINE_CHANGED)

    orchestrator.switch_primary_engine("generative")
    outcome = await orchestrator.process_query("react")

    assert outcome.engine_used == "generative"
    assert recorded == [
        (
            "primary_engine_changed",
            {"previous": "extractive", "current": "generative"},
        )
    ]


@pytest.mark.asyncio
async def test_switch_to_unavailable_engine_raises(orchestrator_factory):
    orchestrator = orchestrator_factory()
    await orchestrator.initialize()

    with pytest.raises(InvalidInputError, match="not available"):
        orchestrator.switch_primary_engine("generative")

    assert orchestrator.primary_engine == "extractive"


@pytest.mark.parametrize(
    ("ratio", "expected"),
    [(1.0, "generative"), (0.0, "extractive")],
)
@pytest.mark.asyncio
async def test_ab_assignment_by_ratio(orchestrator_factory, ratio, expected):
    orchestrator = orchestrator_factory(
        BOTH_ENGINES, ab_testing_enabled=True, ab_testing_ratio=ratio
    )
    recorded = record_events(orchestrator, EngineEvent.AB_TEST_ASSIGNED)

    await orchestrator.initialize()

    assert orchestrator.ab_assignment.engine == expected
    assert recorded[0][1]["engine"] == expected


@pytest.mark.asyncio
async def test_ab_assignment_is_fixed_for_session(orchestrator_factory):
    draw = random.Random(1234).random()  # noqa: S311
    expected = "generative" if draw < 0.5 else "extractive"
    orchestrator = orchestrator_factory(
        BOTH_ENGINES,
        ab_testing_enabled=True,
        ab_testing_ratio=0.5,
        rng=random.Random(1234),  # noqa: S311
    )
    await orchestrator.initialize()

    engines = {
        (await orchestrator.process_query(f"react question {i}")).engine_used
        for i in range(5)
    }

    assert engines == {expected}
    summary = orchestrator.ab_test_summary()
    assert summary["available"]
    assert summary["assigned_engine"] == expected
    assert summary["total_tests"] == 5
    assert summary["engines"][expected]["count"] == 5


@pytest.mark.asyncio
async def test_ab_assignment_belongs_to_session(orchestrator_factory):
    orchestrator = orchestrator_factory(
        BOTH_ENGINES,
        ab_testing_enabled=True,
        ab_testing_ratio=1.0,
        session_id="session_first",
    )
    recorded = record_events(orchestrator, EngineEvent.AB_TEST_ASSIGNED)

    orchestrator.start_session("session_early")
    assert orchestrator.ab_assignment is None

    await orchestrator.initialize()
    orchestrator.start_session("session_second")

    assert orchestrator.ab_assignment.session_id == "session_second"
    assert [payload["session_id"] for _, payload in recorded] == [
        "session_early",
        "session_second",
    ]


@pytest.mark.asyncio
async def test_ab_testing_needs_two_engines(orchestrator_factory):
    orchestrator = orchestrator_factory(ab_testing_enabled=True)

    await orchestrator.initialize()

    assert orchestrator.ab_assignment is None
    assert orchestrator.select_engine() == "extractive"
    assert orchestrator.ab_test_summary() == {"available": False}


@pytest.mark.asyncio
async def test_set_ab_testing_toggles_assignment(orchestrator_factory):
    orchestrator = orchestrator_factory(BOTH_ENGINES)
    await orchestrator.initialize()

    orchestrator.set_ab_testing(True, ratio=1.0)  # noqa: FBT003
    assert orchestrator.select_engine() == "generative"

    orchestrator.set_ab_testing(False)  # noqa: FBT003
    assert orchestrator.ab_assignment is None
    assert orchestrator.select_engine() == "extractive"

    with pytest.raises(InvalidInputError):
        orchestrator.set_ab_testing(True, ratio=2.0)  # noqa: FBT003


@pytest.mark.asyncio
async def test_comparison_metrics(orchestrator_factory):
    orchestrator = orchestrator_factory(BOTH_ENGINES)
    await orchestrator.initialize()

    assert orchestrator.comparison_metrics()["available"] is False

    await orchestrator.process_query("react")
    orchestrator.switch_primary_engine("generative")
    await orchestrator.process_query("react")

    comparison = orchestrator.comparison_metrics()
    assert comparison["available"]
    assert comparison["confidence"]["winner"] == "extractive"
    assert comparison["confidence"]["generative"] == pytest.approx(0.6)
    assert comparison["total_queries"] == 2
    assert comparison["fallback_rate"] == 0.0

    snapshot = orchestrator.metrics_snapshot()
    assert snapshot["engines"]["extractive"]["queries"] == 1
    assert snapshot["engines"]["extractive"]["success_rate"] == 1.0
    assert snapshot["fallbacks"] == 0


@pytest.mark.asyncio
async def test_metrics_averages(channel_factory, fake_engine_factory):
    engine = fake_engine_factory("extractive", confidence=0.5)
    orchestrator = DualEngineOrchestrator(
        [channel_factory(engine)], primary_engine="extractive"
    )
    await orchestrator.initialize()

    await orchestrator.process_query("react")
    engine.confidence = 0.9
    await orchestrator.process_query("react")

    metrics = orchestrator.metrics["extractive"]
    assert metrics.queries == 2
    assert metrics.average_confidence == pytest.approx(0.7)
    assert metrics.average_latency_ms > 0


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_queries(orchestrator_factory):
    orchestrator = orchestrator_factory()
    await orchestrator.initialize()

    def broken(_payload):
        msg = "listener bug"
        raise RuntimeError(msg)

    orchestrator.events.on(EngineEvent.QUERY_COMPLETED, broken)

    outcome = await orchestrator.process_query("react")

    assert outcome.answer == "Fake answer"


@pytest.mark.asyncio
async def test_cleanup_resets_state(orchestrator_factory):
    orchestrator = orchestrator_factory(BOTH_ENGINES)
    await orchestrator.initialize()
    await orchestrator.process_query("react")

    await orchestrator.cleanup()

    assert orchestrator.available_engines == []
    assert not orchestrator.initialized
    assert orchestrator.metrics["extractive"].queries == 0
    with pytest.raises(EngineError):
        await orchestrator.process_query("react")


def test_duplicate_engine_names_rejected(fake_engine_factory):
    channels = [
        EngineChannel(fake_engine_factory("extractive")),
        EngineChannel(fake_engine_factory("extractive")),
    ]

    with pytest.raises(InvalidInputError, match="Duplicate"):
        DualEngineOrchestrator(channels)


@pytest.mark.parametrize("ratio", [-0.1, 1.5])
def test_invalid_ab_ratio_rejected(fake_engine_factory, ratio):
    with pytest.raises(InvalidInputError, match="ratio"):
        DualEngineOrchestrator(
            [EngineChannel(fake_engine_factory("extractive"))],
            ab_testing_ratio=ratio,
        )
