"""Rich console output for roundtable executions and context optimization."""

import logging

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from roundtable.models import ContextLimitStatus, OptimizationResult, RoundtableExecution, RoundtableResponse

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _response_title(resp: RoundtableResponse) -> str:
    title = f"[bold]#{resp.rank} {resp.backend}[/bold]" if resp.rank else f"[bold]{resp.backend}[/bold]"
    if resp.fallback_for:
        title += f" (fallback for {resp.fallback_for})"
    return title


def _response_subtitle(resp: RoundtableResponse) -> str:
    meta = resp.metadata
    parts = [f"{meta.latency_sec:.1f}s", f"{meta.tokens} tokens", f"${meta.cost:.4f}"]
    if resp.quality_score is not None:
        parts.append(f"quality {resp.quality_score:.0f}")
    return " | ".join(parts)


def print_execution(execution: RoundtableExecution) -> None:
    """Print ranked responses, duplicate groups, consensus and failures."""
    ranked = sorted(execution.responses.values(), key=lambda r: r.rank or len(execution.responses) + 1)

    console.print(Rule(f"[bold cyan]Roundtable {execution.id}[/bold cyan]"))
    for resp in ranked:
        console.print(
            Panel(
                Markdown(resp.content),
                title=_response_title(resp),
                subtitle=_response_subtitle(resp),
                border_style="dim",
            )
        )

    meta = execution.metadata
    if meta.duplicate_groups:
        console.print("[bold]Similar answers:[/bold]")
        for group in meta.duplicate_groups:
            console.print(f"  {', '.join(group.backends)} ({group.similarity:.0%} similar)")

    for backend in execution.failed_backends:
        console.print(f"  [red]FAIL[/red] {backend}: {escape(execution.errors.get(backend, 'unknown error'))}")

    console.print(
        Text(
            f"Consensus: {meta.consensus.level}% ({meta.consensus.agreement}) | "
            f"Answers: {len(execution.responses)}/{len(execution.states)} | "
            f"Cost: ${meta.total_cost:.4f} | "
            f"Duration: {meta.total_latency_sec:.1f}s"
            + (" | stopped early on consensus" if meta.early_terminated else ""),
            style="dim",
        )
    )


def print_optimization_result(result: OptimizationResult) -> None:
    """Print applied strategies and the before/after token counts."""
    console.print(Rule("[bold green]Context Optimization[/bold green]"))

    if result.strategies:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Strategy")
        table.add_column("Items", justify="right")
        table.add_column("Tokens saved", justify="right")
        for strategy in result.strategies:
            table.add_row(strategy.name, str(strategy.items_affected), str(strategy.tokens_saved))
        console.print(table)

    style = "green" if result.target_reached else "yellow"
    console.print(
        Text(
            f"{result.original_tokens} -> {result.optimized_tokens} tokens "
            f"(target {result.target_tokens}, ratio {result.compression_ratio:.2f})",
            style=style,
        )
    )
    console.print(result.summary)


def print_limit_status(status: ContextLimitStatus) -> None:
    style = "green" if status.within_limit else "red"
    line = f"{status.current_tokens} tokens, {status.utilization_percent:.1f}% of limit"
    if not status.within_limit:
        line += f" ({status.excess_tokens} over)"
    console.print(Text(line, style=style))
