"""Dataclasses for roundtable executions and context budgeting. No deps."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Roundtable ---


@dataclass
class SessionSettings:
    temperature: float = 0.7
    max_tokens: int = 2048
    system_prompt: str | None = None
    streaming: bool = True


@dataclass
class ExecutionStrategy:
    timeout_sec: float = 30.0
    max_concurrency: int = 6
    priority_backends: list[str] = field(default_factory=list)
    cost_optimization: bool = False
    fallback_chain: bool = True
    fallback_timeout_sec: float = 15.0
    deduplication_threshold: float = 0.85


class BackendState(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class ResponseMetadata:
    tokens: int
    cost: float
    latency_sec: float
    finish_reason: str = "stop"


@dataclass
class RoundtableResponse:
    message_id: str
    backend: str
    content: str
    metadata: ResponseMetadata
    rank: int | None = None
    quality_score: float | None = None
    fallback_for: str | None = None  # backend this answer stands in for


@dataclass
class DuplicateGroup:
    backends: list[str]
    similarity: float


@dataclass
class Consensus:
    level: int = 0  # 0-100
    agreement: str = "diverse"  # "unanimous", "majority", "split", "diverse"


@dataclass
class ExecutionMetadata:
    total_cost: float = 0.0
    total_latency_sec: float = 0.0
    duplicate_groups: list[DuplicateGroup] = field(default_factory=list)
    consensus: Consensus = field(default_factory=Consensus)
    early_terminated: bool = False


@dataclass
class RoundtableExecution:
    id: str
    backends: list[str]
    prompt: str
    settings: SessionSettings
    start_time: float  # time.monotonic() at dispatch
    responses: dict[str, RoundtableResponse] = field(default_factory=dict)
    states: dict[str, BackendState] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    metadata: ExecutionMetadata = field(default_factory=ExecutionMetadata)

    @property
    def completed_backends(self) -> list[str]:
        return [b for b, s in self.states.items() if s is BackendState.COMPLETED]

    @property
    def failed_backends(self) -> list[str]:
        return [b for b, s in self.states.items() if s is BackendState.ERROR]

    @property
    def all_failed(self) -> bool:
        return not self.responses


@dataclass
class ProgressEvent:
    type: str  # "model_start", "model_streaming", "model_complete", "model_error"
    execution_id: str
    backend: str
    progress: float  # 0-100
    content: str | None = None
    response: RoundtableResponse | None = None
    error: str | None = None


# --- Context budgeting ---


class ContextItemType(str, Enum):
    MESSAGE = "message"
    FILE = "file"
    SUMMARY = "summary"
    REFERENCE = "reference"
    NOTE = "note"


@dataclass
class ContextItem:
    id: str
    content: str
    type: ContextItemType
    priority: int  # 0-100
    tokens: int
    source: str
    relevance_score: float | None = None
    session_id: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    tags: list[str] = field(default_factory=list)
    compressed: bool = False
    original_length: int | None = None  # tokens before compression


@dataclass
class OptimizationAction:
    type: str  # "remove", "compress", "summarize", "merge"
    item_ids: list[str]
    reason: str
    impact: str  # "low", "medium", "high"


@dataclass
class OptimizationStrategy:
    name: str
    description: str
    tokens_saved: int  # estimated by the planner, realized once applied
    items_affected: int
    actions: list[OptimizationAction] = field(default_factory=list)


@dataclass
class OptimizationResult:
    original_tokens: int
    optimized_tokens: int
    tokens_saved: int
    compression_ratio: float
    strategies: list[OptimizationStrategy]
    optimized_items: list[ContextItem]
    summary: str
    target_tokens: int
    target_reached: bool


@dataclass
class ContextLimitStatus:
    within_limit: bool
    current_tokens: int
    excess_tokens: int
    utilization_percent: float


@dataclass
class ContextSnapshot:
    items: list[ContextItem]
    total_tokens: int
    max_tokens: int
    ideal_tokens: int
