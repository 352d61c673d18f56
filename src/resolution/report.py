"""Rich terminal report of fix effectiveness.

Reads the resolution snapshot without modifying it and prints aggregate
effectiveness, the per-fix-type breakdown and every fix-type group ordered
worst first.

Usage::

    python -m src.resolution.report [--config <tracker.yaml>] [--fix-type T] [--developer D]
"""
from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.resolution.recurrence import count_recent_recurrences
from src.resolution.scoring import EffectivenessScorer
from src.resolution.snapshot import SnapshotStore
from src.resolution.suggestions import FixSuggestionEngine
from src.shared.config import TrackerConfig, load_tracker_config
from src.shared.constants import SERVICE_NAME
from src.shared.logging import setup_logging
from src.shared.models.resolution import (
    AggregateEffectiveness,
    EffectivenessFilter,
    FixSuggestion,
    SuggestionOptions,
)
from src.shared.utils import utc_now

logger = logging.getLogger(__name__)

_console = Console()


def _rate_style(rate: float, threshold: float) -> str:
    if rate >= threshold:
        return "green"
    if rate >= threshold / 2:
        return "yellow"
    return "red"


def print_effectiveness_report(
    report: AggregateEffectiveness,
    threshold: float = 0.8,
    console: Console | None = None,
) -> None:
    """Print aggregate effectiveness as a summary panel plus tables."""
    console = console or _console

    summary = Text()
    summary.append("Fixes tracked: ", style="bold")
    summary.append(f"{report.total_fixes}\n", style="cyan")
    summary.append("Effective: ", style="bold")
    summary.append(
        f"{report.effective_fixes} ({report.effectiveness_rate:.0%})\n",
        style=_rate_style(report.effectiveness_rate, threshold),
    )
    summary.append("Average effectiveness: ", style="bold")
    summary.append(f"{report.average_effectiveness:.2f}\n")
    summary.append("Recent recurrences: ", style="bold")
    summary.append(f"{report.recent_recurrences}", style="yellow")
    console.print(
        Panel(summary, title="[bold]Fix Effectiveness[/bold]", border_style="blue", expand=False)
    )

    if not report.fix_type_breakdown:
        console.print("[dim]No resolutions recorded.[/dim]")
        return

    breakdown = Table(title="By Fix Type", show_header=True, header_style="bold magenta")
    breakdown.add_column("Fix Type", style="cyan", min_width=16)
    breakdown.add_column("Fixes", justify="right")
    breakdown.add_column("Effective", justify="right")
    breakdown.add_column("Avg Score", justify="right")
    for fix_type in sorted(report.fix_type_breakdown):
        entry = report.fix_type_breakdown[fix_type]
        breakdown.add_row(
            fix_type,
            str(entry.count),
            str(entry.effective_count),
            f"{entry.average_effectiveness:.2f}",
        )
    console.print(breakdown)

    top = Table(title="Top Performing Fixes", show_header=True, header_style="bold magenta")
    top.add_column("Signature", style="cyan", min_width=20)
    top.add_column("Resolution", style="dim")
    top.add_column("Fix Type")
    top.add_column("Score", justify="right")
    top.add_column("Recurrences", justify="right")
    top.add_column("Days", justify="right")
    for fix in report.top_performing_fixes:
        top.add_row(
            fix.error_signature,
            fix.resolution_id,
            fix.fix_type or "-",
            f"{fix.effectiveness_score:.2f}",
            str(fix.recurrence_count),
            str(fix.days_since_applied),
        )
    console.print(top)


def print_suggestions(
    suggestions: Sequence[FixSuggestion],
    threshold: float = 0.8,
    console: Console | None = None,
) -> None:
    """Print fix-type groups with their success rate and confidence."""
    console = console or _console
    if not suggestions:
        console.print("[dim]No fix suggestions available.[/dim]")
        return

    table = Table(title="Fix Suggestions", show_header=True, header_style="bold magenta")
    table.add_column("Fix Type", style="cyan", min_width=16)
    table.add_column("Applied", justify="right")
    table.add_column("Succeeded", justify="right")
    table.add_column("Success Rate", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Example Fix")
    for s in suggestions:
        style = _rate_style(s.success_rate, threshold)
        table.add_row(
            s.fix_type,
            str(s.application_count),
            str(s.success_count),
            f"[{style}]{s.success_rate:.0%}[/{style}]",
            f"{s.confidence:.2f}",
            s.fix_description or "-",
        )
    console.print(table)


async def build_report(
    config: TrackerConfig,
    filters: EffectivenessFilter | None = None,
) -> tuple[AggregateEffectiveness, list[FixSuggestion]]:
    """Compute the report data from the snapshot in ``config.storage_dir``."""
    filters = filters or EffectivenessFilter()
    records = await SnapshotStore(config.storage_dir).load()
    matching = [r for r in records if filters.matches(r)]

    scorer = EffectivenessScorer(config)
    recent = count_recent_recurrences(matching, utc_now(), config.recurrence_window)
    report = scorer.aggregate(matching, recent_recurrences=recent)
    suggestions = FixSuggestionEngine(scorer, config.confidence_z).suggest(
        None, matching, SuggestionOptions(include_ineffective=True, max_results=50)
    )
    return report, suggestions


def _arg(argv: Sequence[str], flag: str) -> str | None:
    if flag in argv:
        idx = argv.index(flag)
        if idx + 1 < len(argv):
            return argv[idx + 1]
    return None


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for ``python -m src.resolution.report``."""
    argv = list(sys.argv[1:] if argv is None else argv)
    config = load_tracker_config(_arg(argv, "--config"))
    setup_logging(SERVICE_NAME, config.log_level)

    filters = EffectivenessFilter(
        fix_type=_arg(argv, "--fix-type"),
        developer_id=_arg(argv, "--developer"),
    )
    report, suggestions = asyncio.run(build_report(config, filters))
    print_effectiveness_report(report, config.effectiveness_threshold)
    print_suggestions(suggestions, config.effectiveness_threshold)


if __name__ == "__main__":
    main()
