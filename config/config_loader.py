"""Load settings.yaml into typed dataclasses. Checks backend API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

# sdk values that talk to a completion endpoint which may not need a key
_KEYLESS_SDKS = {"endpoint"}


@dataclass
class BackendConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    max_concurrency: int
    cost_per_1k: float
    fallback: str | None = None
    base_url: str | None = None


@dataclass
class RoundtableDefaults:
    backends: list[str]
    timeout_sec: float
    max_concurrency: int
    deduplication_threshold: float
    fallback_chain: bool = True
    fallback_timeout_sec: float = 15.0
    cost_optimization: bool = False
    priority_backends: list[str] = field(default_factory=list)
    temperature: float = 0.7
    max_tokens: int = 2048


@dataclass
class ContextConfig:
    max_tokens: int = 200_000
    ideal_tokens: int = 150_000
    summarization_chunk_size: int = 4000
    min_relevance_score: float = 0.3
    recency_decay_factor: float = 0.1
    summarizer_backend: str | None = None


@dataclass
class PromptsConfig:
    summarization: str


@dataclass
class AppConfig:
    roundtable: RoundtableDefaults
    context: ContextConfig
    backends: dict[str, BackendConfig]
    prompts: PromptsConfig
    available_backends: set[str] = field(default_factory=set)


def concurrency_ceilings(config: AppConfig) -> dict[str, int]:
    """backend -> max in-flight calls."""
    return {name: b.max_concurrency for name, b in config.backends.items()}


def cost_table(config: AppConfig) -> dict[str, float]:
    """backend -> dollars per 1k tokens."""
    return {name: b.cost_per_1k for name, b in config.backends.items()}


def fallback_table(config: AppConfig) -> dict[str, str]:
    """backend -> substitute backend tried once when it fails."""
    return {name: b.fallback for name, b in config.backends.items() if b.fallback}


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Raises ValueError if a fallback names an unknown backend.
    Logs missing API keys but does not raise; callers check
    available_backends.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    rt_raw = raw["roundtable"]
    roundtable = RoundtableDefaults(
        backends=list(rt_raw["backends"]),
        timeout_sec=float(rt_raw["timeout_sec"]),
        max_concurrency=int(rt_raw["max_concurrency"]),
        deduplication_threshold=float(rt_raw["deduplication_threshold"]),
        fallback_chain=bool(rt_raw.get("fallback_chain", True)),
        fallback_timeout_sec=float(rt_raw.get("fallback_timeout_sec", 15)),
        cost_optimization=bool(rt_raw.get("cost_optimization", False)),
        priority_backends=list(rt_raw.get("priority_backends", [])),
        temperature=float(rt_raw.get("temperature", 0.7)),
        max_tokens=int(rt_raw.get("max_tokens", 2048)),
    )

    ctx_raw = raw.get("context", {})
    context = ContextConfig(
        max_tokens=int(ctx_raw.get("max_tokens", 200_000)),
        ideal_tokens=int(ctx_raw.get("ideal_tokens", 150_000)),
        summarization_chunk_size=int(ctx_raw.get("summarization_chunk_size", 4000)),
        min_relevance_score=float(ctx_raw.get("min_relevance_score", 0.3)),
        recency_decay_factor=float(ctx_raw.get("recency_decay_factor", 0.1)),
        summarizer_backend=ctx_raw.get("summarizer_backend"),
    )
    if context.ideal_tokens > context.max_tokens:
        raise ValueError("context.ideal_tokens must not exceed context.max_tokens")

    prompts = PromptsConfig(summarization=raw["prompts"]["summarization"])

    backends: dict[str, BackendConfig] = {}
    available_backends: set[str] = set()

    for backend_name, backend_raw in raw["backends"].items():
        backend_cfg = BackendConfig(
            name=backend_name,
            sdk=backend_raw["sdk"],
            model=backend_raw["model"],
            api_key_env=backend_raw.get("api_key_env", ""),
            max_concurrency=int(backend_raw.get("max_concurrency", 1)),
            cost_per_1k=float(backend_raw.get("cost_per_1k", 0.001)),
            fallback=backend_raw.get("fallback"),
            base_url=backend_raw.get("base_url"),
        )
        backends[backend_name] = backend_cfg

        if backend_cfg.sdk in _KEYLESS_SDKS and not backend_cfg.api_key_env:
            available_backends.add(backend_name)
            continue
        api_key = os.environ.get(backend_cfg.api_key_env, "").strip() if backend_cfg.api_key_env else ""
        if api_key:
            available_backends.add(backend_name)
            logger.info("Backend available: %s", backend_name)
        else:
            logger.info(
                "Backend skipped (no API key): %s (set %s in .env)",
                backend_name,
                backend_cfg.api_key_env,
            )

    for backend_cfg in backends.values():
        if backend_cfg.fallback and backend_cfg.fallback not in backends:
            raise ValueError(
                f"Backend {backend_cfg.name} falls back to unknown backend {backend_cfg.fallback}"
            )

    return AppConfig(
        roundtable=roundtable,
        context=context,
        backends=backends,
        prompts=prompts,
        available_backends=available_backends,
    )
