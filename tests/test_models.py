"""Tests for roundtable/models.py dataclasses."""

from roundtable.models import (
    BackendState,
    ContextItemType,
    ExecutionStrategy,
    ResponseMetadata,
    RoundtableExecution,
    RoundtableResponse,
    SessionSettings,
)
from tests.conftest import make_item


def _execution(states: dict[str, BackendState]) -> RoundtableExecution:
    return RoundtableExecution(
        id="roundtable_test",
        backends=list(states),
        prompt="Which queue?",
        settings=SessionSettings(),
        start_time=0.0,
        states=dict(states),
    )


def test_session_settings_defaults():
    settings = SessionSettings()
    assert settings.temperature == 0.7
    assert settings.max_tokens == 2048
    assert settings.system_prompt is None
    assert settings.streaming


def test_execution_strategy_defaults_not_shared():
    a = ExecutionStrategy()
    b = ExecutionStrategy()
    a.priority_backends.append("gpt-4o")
    assert b.priority_backends == []
    assert a.fallback_chain
    assert not a.cost_optimization


def test_backend_state_values():
    assert BackendState("pending") is BackendState.PENDING
    assert BackendState.COMPLETED.value == "completed"
    assert BackendState.ERROR == "error"


def test_execution_completed_and_failed_backends():
    execution = _execution({
        "alpha": BackendState.COMPLETED,
        "beta": BackendState.ERROR,
        "gamma": BackendState.PENDING,
    })
    assert execution.completed_backends == ["alpha"]
    assert execution.failed_backends == ["beta"]


def test_execution_all_failed_tracks_responses():
    execution = _execution({"alpha": BackendState.ERROR})
    assert execution.all_failed

    execution.responses["alpha"] = RoundtableResponse(
        message_id="m1",
        backend="alpha",
        content="Kafka.",
        metadata=ResponseMetadata(tokens=3, cost=0.0, latency_sec=0.1),
    )
    assert not execution.all_failed


def test_execution_metadata_defaults():
    execution = _execution({})
    assert execution.metadata.total_cost == 0.0
    assert execution.metadata.consensus.level == 0
    assert execution.metadata.consensus.agreement == "diverse"
    assert execution.metadata.duplicate_groups == []
    assert not execution.metadata.early_terminated


def test_context_item_type_values():
    assert ContextItemType("summary") is ContextItemType.SUMMARY
    assert [t.value for t in ContextItemType] == ["message", "file", "summary", "reference", "note"]


def test_context_item_defaults():
    item = make_item("a")
    assert item.tags == []
    assert not item.compressed
    assert item.original_length is None
    assert item.timestamp.tzinfo is not None
