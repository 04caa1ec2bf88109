"""Click CLI: loads config, builds providers, runs a roundtable or a context optimization."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, concurrency_ceilings, cost_table, fallback_table, load_config
from roundtable.caller import ModelCaller
from roundtable.context.engine import ContextBudgetEngine
from roundtable.context.serialization import load_items, save_items
from roundtable.context.summarizer import KeyPointSummarizer, ModelSummarizer, Summarizer
from roundtable.executor import RoundtableExecutor
from roundtable.models import ExecutionStrategy, ProgressEvent, RoundtableExecution, SessionSettings
from roundtable.output import print_execution, print_limit_status, print_optimization_result
from roundtable.providers.anthropic import AnthropicProvider
from roundtable.providers.base import AIProvider, BackendError
from roundtable.providers.endpoint import EndpointProvider
from roundtable.providers.gemini import GeminiProvider
from roundtable.providers.openai_compatible import OpenAICompatibleProvider
from roundtable.providers.openai_provider import OpenAIProvider
from roundtable.slots import ConcurrencySlotManager

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
    "openai_compatible": OpenAICompatibleProvider,
    "endpoint": EndpointProvider,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _load_config_or_exit() -> AppConfig:
    try:
        return load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)


def _build_all_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build all available providers. Returns dict keyed by backend id."""
    providers: dict[str, AIProvider] = {}
    for name in sorted(config.available_backends):
        backend_cfg = config.backends[name]
        if backend_cfg.sdk not in PROVIDER_CLASSES:
            logger.warning("Backend '%s' uses unknown sdk '%s', skipping", name, backend_cfg.sdk)
            continue
        try:
            providers[name] = PROVIDER_CLASSES[backend_cfg.sdk](backend_cfg)
        except BackendError as exc:
            logger.warning("Failed to instantiate backend '%s': %s", name, exc)
    return providers


def _determine_panel(config: AppConfig, models_arg: str | None) -> list[str]:
    """--models overrides the configured default panel."""
    if models_arg:
        return [m.strip() for m in models_arg.split(",") if m.strip()]
    return list(config.roundtable.backends)


def _build_strategy(
    config: AppConfig,
    timeout: float | None,
    cost_optimization: bool,
    no_fallback: bool,
    threshold: float | None,
) -> ExecutionStrategy:
    defaults = config.roundtable
    return ExecutionStrategy(
        timeout_sec=timeout if timeout is not None else defaults.timeout_sec,
        max_concurrency=defaults.max_concurrency,
        priority_backends=list(defaults.priority_backends),
        cost_optimization=cost_optimization or defaults.cost_optimization,
        fallback_chain=defaults.fallback_chain and not no_fallback,
        fallback_timeout_sec=defaults.fallback_timeout_sec,
        deduplication_threshold=threshold if threshold is not None else defaults.deduplication_threshold,
    )


def _build_summarizer(config: AppConfig, providers: dict[str, AIProvider]) -> Summarizer:
    backend = config.context.summarizer_backend
    if backend and backend in providers:
        caller = ModelCaller(providers, cost_table(config))
        return ModelSummarizer(caller, backend, config.prompts.summarization)
    if backend:
        logger.info("Summarizer backend %s unavailable, using key-point extraction", backend)
    return KeyPointSummarizer()


async def _run_ask(
    prompt: str,
    panel: list[str],
    providers: dict[str, AIProvider],
    config: AppConfig,
    settings: SessionSettings,
    strategy: ExecutionStrategy,
) -> RoundtableExecution:
    executor = RoundtableExecutor(
        caller=ModelCaller(providers, cost_table(config)),
        slots=ConcurrencySlotManager(concurrency_ceilings(config)),
        fallbacks=fallback_table(config),
    )

    console.print(f"\n[bold cyan]Roundtable[/bold cyan]: {len(panel)} backends")
    console.print(f"Panel: {', '.join(panel)}")
    console.print(f"Prompt: [italic]{escape(prompt[:80])}{'...' if len(prompt) > 80 else ''}[/italic]\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Waiting for backends...", total=None)

        def on_progress(event: ProgressEvent) -> None:
            if event.type == "model_complete":
                progress.print(f"[green]OK[/green] {event.backend}")
            elif event.type == "model_error":
                progress.print(f"[red]FAIL[/red] {event.backend}: {escape(event.error or '')}")
            elif event.type == "model_start":
                progress.update(task, description=f"Running {event.backend}... ({event.progress:.0f}%)")

        return await executor.execute(prompt, panel, settings, strategy, on_progress=on_progress)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(verbose: bool) -> None:
    """Roundtable -- ask several models at once, and keep context under budget.

    \b
    Examples:
      roundtable ask "REST or GraphQL for a mobile backend?"
      roundtable ask "Explain CRDTs" --models gpt-4o-mini,claude-3-haiku --cost-optimization
      roundtable optimize context.json --target 100000 --output trimmed.json
      roundtable optimize context.json --truncate --target 50000
    """
    # Reconfigure stdout/stderr to UTF-8 on Windows so model output with
    # non-ASCII characters doesn't crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)


@main.command()
@click.argument("prompt")
@click.option("--models", default=None, help="Comma-separated backend list, overrides the default panel")
@click.option("--timeout", default=None, type=float, help="Per-backend deadline in seconds")
@click.option("--cost-optimization", is_flag=True, help="Priority backends first, stop early on consensus")
@click.option("--no-fallback", is_flag=True, help="Do not retry failed backends on a cheaper sibling")
@click.option("--threshold", default=None, type=float, help="Similarity at which answers count as duplicates")
@click.option("--system", "system_prompt", default=None, help="System prompt sent to every backend")
def ask(
    prompt: str,
    models: str | None,
    timeout: float | None,
    cost_optimization: bool,
    no_fallback: bool,
    threshold: float | None,
    system_prompt: str | None,
) -> None:
    """Send PROMPT to several backends in parallel and compare the answers."""
    config = _load_config_or_exit()
    providers = _build_all_providers(config)

    requested = _determine_panel(config, models)
    panel = [b for b in requested if b in providers]
    skipped = [b for b in requested if b not in providers]
    if skipped:
        console.print(f"[yellow]Unavailable, skipping:[/yellow] {', '.join(skipped)}")
    if not panel:
        console.print("[bold red]Error:[/bold red] No backends available. Check API keys in .env or adjust --models.")
        sys.exit(1)

    settings = SessionSettings(
        temperature=config.roundtable.temperature,
        max_tokens=config.roundtable.max_tokens,
        system_prompt=system_prompt,
    )
    strategy = _build_strategy(config, timeout, cost_optimization, no_fallback, threshold)

    try:
        execution = asyncio.run(_run_ask(prompt, panel, providers, config, settings, strategy))
    except ValueError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    print_execution(execution)
    if execution.all_failed:
        console.print("[bold red]Error:[/bold red] Every backend failed.")
        sys.exit(1)


@main.command()
@click.argument("context_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--target", default=None, type=int, help="Token target (default: ideal_tokens, or max_tokens with --truncate)")
@click.option("--strategies", default=None, help="Comma-separated strategies to allow")
@click.option("--truncate", is_flag=True, help="Smart truncation instead of optimization")
@click.option("--output", "output_path", default=None, type=click.Path(dir_okay=False, path_type=Path),
              help="Write the resulting context items here as JSON")
def optimize(
    context_file: Path,
    target: int | None,
    strategies: str | None,
    truncate: bool,
    output_path: Path | None,
) -> None:
    """Bring the context items in CONTEXT_FILE (a JSON list) under a token budget."""
    config = _load_config_or_exit()
    try:
        items = load_items(context_file)
    except ValueError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    if truncate:
        engine = ContextBudgetEngine(config.context)
        result_items = engine.smart_truncate(items, max_tokens=target)
        console.print(f"Kept {len(result_items)}/{len(items)} items")
        print_limit_status(engine.validate_limit(result_items, target))
    else:
        summarizer = _build_summarizer(config, _build_all_providers(config))
        engine = ContextBudgetEngine(config.context, summarizer)
        allowed = [s.strip() for s in strategies.split(",") if s.strip()] if strategies else None
        try:
            result = asyncio.run(engine.optimize(items, target_tokens=target, allowed_strategies=allowed))
        except ValueError as exc:
            console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
            sys.exit(1)
        print_optimization_result(result)
        result_items = result.optimized_items

    if output_path:
        saved = save_items(result_items, output_path)
        console.print(f"\n[dim]Saved to: {saved}[/dim]")


if __name__ == "__main__":
    main()
