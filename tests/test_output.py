"""Tests for roundtable/output.py."""

import pytest
from rich.console import Console

import roundtable.output as output
from roundtable.models import (
    BackendState,
    Consensus,
    ContextLimitStatus,
    DuplicateGroup,
    OptimizationResult,
    OptimizationStrategy,
    ResponseMetadata,
    RoundtableExecution,
    RoundtableResponse,
    SessionSettings,
)


@pytest.fixture
def recorded(monkeypatch) -> Console:
    console = Console(record=True, width=120, legacy_windows=False)
    monkeypatch.setattr(output, "console", console)
    return console


def _execution() -> RoundtableExecution:
    execution = RoundtableExecution(
        id="roundtable_abc123",
        backends=["alpha", "beta", "gamma"],
        prompt="Which database?",
        settings=SessionSettings(),
        start_time=0.0,
    )
    execution.responses = {
        "alpha": RoundtableResponse("m1", "alpha", "Use Postgres.", ResponseMetadata(40, 0.002, 1.2), rank=2,
                                    quality_score=61),
        "delta": RoundtableResponse("m2", "delta", "Postgres, clearly.", ResponseMetadata(30, 0.001, 0.8), rank=1,
                                    quality_score=70, fallback_for="beta"),
    }
    execution.states = {
        "alpha": BackendState.COMPLETED,
        "beta": BackendState.ERROR,
        "delta": BackendState.COMPLETED,
        "gamma": BackendState.ERROR,
    }
    execution.errors = {"beta": "[beta] boom", "gamma": "skipped by early consensus"}
    execution.metadata.duplicate_groups = [DuplicateGroup(["alpha", "delta"], 0.9)]
    execution.metadata.consensus = Consensus(88, "majority")
    execution.metadata.early_terminated = True
    return execution


def test_print_execution_shows_ranking_failures_and_consensus(recorded):
    output.print_execution(_execution())
    text = recorded.export_text()

    assert text.index("#1 delta") < text.index("#2 alpha")
    assert "fallback for beta" in text
    assert "alpha, delta (90% similar)" in text
    assert "FAIL beta: [beta] boom" in text
    assert "skipped by early consensus" in text
    assert "Consensus: 88% (majority)" in text
    assert "stopped early" in text


def test_print_optimization_result(recorded):
    result = OptimizationResult(
        original_tokens=1000,
        optimized_tokens=400,
        tokens_saved=600,
        compression_ratio=0.4,
        strategies=[OptimizationStrategy("low-relevance-removal", "Remove", 600, 3)],
        optimized_items=[],
        summary="Optimized context by 600 tokens.",
        target_tokens=500,
        target_reached=True,
    )

    output.print_optimization_result(result)
    text = recorded.export_text()

    assert "low-relevance-removal" in text
    assert "1000 -> 400 tokens" in text
    assert "Optimized context by 600 tokens." in text


def test_print_limit_status_over(recorded):
    output.print_limit_status(ContextLimitStatus(False, 1200, 200, 120.0))
    assert "120.0% of limit (200 over)" in recorded.export_text()
