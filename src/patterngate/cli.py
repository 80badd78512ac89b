"""
Command-line interface for PatternGate.

Every command reads a JSON file holding a list of raw signal records, as
delivered by the feed's bulk history endpoint.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import Config
from .engine import (
    ConfluenceRule,
    FindingKind,
    GateContext,
    PatternEngine,
    TimeframeFindingKind,
    strength_label,
)
from .exceptions import ConfigurationError
from .logger import get_gate_logger, get_logger
from .models.signals import coerce_datetime

console = Console()

_VERDICT_STYLES = {
    "STRONG": "bold green",
    "DIVERGENT": "yellow",
    "CONFLICTING": "red",
    "NONE": "dim",
}


def describe_finding(finding) -> str:
    """One-line English rendering of a chronological finding."""
    kind = finding.kind
    if kind == FindingKind.INSUFFICIENT_DATA:
        return f"Single {finding.signal.pattern_type} signal, not enough history"
    if kind == FindingKind.ALL_EXPIRED:
        return f"All {finding.expired_count} patterns expired, no active setup"
    if kind == FindingKind.REVERSAL_SUSPECTED:
        return (
            f"Possible reversal: {finding.from_direction.value} "
            f"{finding.expired_signal.pattern_type} expired, now "
            f"{finding.to_direction.value} {finding.active_signal.pattern_type}"
        )
    if kind == FindingKind.MOMENTUM_BUILDING:
        return f"{finding.direction.value} momentum building across {finding.recent_direction_count} recent signals"
    if kind == FindingKind.MIXED_SIGNALS:
        return f"Mixed signals across {finding.active_count} active patterns"
    if kind == FindingKind.EXPIRY_NOTE:
        return f"{finding.expired_count} earlier pattern(s) expired"
    return kind.value


def describe_timeframe_finding(finding) -> str:
    kind = finding.kind
    if kind == TimeframeFindingKind.NO_ACTIVE_TIMEFRAMES:
        return "No active timeframes"
    if kind == TimeframeFindingKind.ANCHOR:
        return f"Anchor {finding.timeframe}: {finding.direction.value} ({', '.join(finding.pattern_types)})"
    if kind == TimeframeFindingKind.ALIGNMENT:
        return f"{finding.verdict.type.value} across {finding.active_timeframe_count} timeframes"
    if kind == TimeframeFindingKind.BEST_RISK_REWARD:
        signal = finding.signal
        return (
            f"Best R:R {finding.risk_reward_ratio:.2f} on {signal.timeframe} {signal.pattern_type} "
            f"(SL {signal.format_level('stop_loss')}, T1 {signal.format_level('target1')})"
        )
    if kind == TimeframeFindingKind.EXPIRED_TIMEFRAMES:
        return f"Expired: {', '.join(finding.timeframes)}"
    return kind.value


def _load_records(path: Path) -> list:
    with open(path, "r") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("signals", data.get("patterns", []))
    if not isinstance(data, list):
        raise click.BadParameter(f"{path} must contain a list of signal records")
    return data


def _build_engine(ctx: click.Context, signals_file: Path, now: Optional[str]) -> PatternEngine:
    config: Config = ctx.obj["config"]
    clock = None
    if now:
        fixed = coerce_datetime(now)
        if fixed is None:
            raise click.BadParameter(f"Unparseable --now value: {now}")
        clock = lambda: fixed  # noqa: E731

    engine = PatternEngine(config, clock=clock)
    try:
        records = _load_records(signals_file)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{signals_file} is not valid JSON: {e}")
    asyncio.run(engine.load_snapshot(records))
    return engine


now_option = click.option(
    "--now",
    default=None,
    help="Evaluate expiry at this ISO-8601 instant instead of the current time"
)
signals_argument = click.argument("signals_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))


@click.group()
@click.version_option(version=__version__, prog_name="patterngate")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (.json or .env)"
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging"
)
@click.pass_context
def main(ctx: click.Context, config: Optional[Path], verbose: bool) -> None:
    """
    PatternGate: Pattern Confluence & Trade-Gating Engine

    Analyzes chart-pattern signals across timeframes and gates the best
    candidate into a sized option order proposal.
    """
    ctx.ensure_object(dict)

    try:
        if config and config.suffix == ".json":
            ctx.obj["config"] = Config.from_file(config)
        elif config:
            ctx.obj["config"] = Config.load_from_env(str(config))
        else:
            ctx.obj["config"] = Config.load_from_env()
    except ConfigurationError as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    if verbose:
        ctx.obj["config"].logging.level = "DEBUG"

    ctx.obj["verbose"] = verbose
    ctx.obj["logger"] = get_logger(
        "patterngate",
        ctx.obj["config"].logging.level if verbose else "WARNING",
        log_file=None,
    )


@main.command()
@signals_argument
@click.option("--instrument", "-i", default=None, help="Only show this instrument")
@click.option(
    "--sort",
    type=click.Choice(["latest", "score", "instrument"]),
    default="latest",
    help="Instrument ordering"
)
@now_option
@click.pass_context
def analyze(ctx: click.Context, signals_file: Path, instrument: Optional[str], sort: str, now: Optional[str]) -> None:
    """Show confluence verdict, strength and findings per instrument."""
    engine = _build_engine(ctx, signals_file, now)

    if instrument:
        group = engine.analyze(instrument)
        groups = [group] if group else []
    else:
        groups = engine.instrument_groups(sort=sort)

    if not groups:
        console.print("[yellow]No signals to analyze[/yellow]")
        return

    table = Table(title="Pattern Confluence", show_header=True, header_style="bold magenta")
    table.add_column("Instrument", style="cyan")
    table.add_column("Verdict")
    table.add_column("Direction")
    table.add_column("Strength", justify="right")
    table.add_column("Timeframes")
    table.add_column("Findings")

    for group in groups:
        verdict = group.verdict
        style = _VERDICT_STYLES.get(verdict.type.value, "")
        timeframes = " ".join(
            tf.timeframe if tf.signals else f"[dim]{tf.timeframe}[/dim]" for tf in group.timeframes
        )
        findings = "\n".join(
            [describe_finding(f) for f in group.findings]
            + [describe_timeframe_finding(f) for f in group.timeframe_findings]
        )
        table.add_row(
            f"{group.display_name}\n[dim]{group.instrument_id}[/dim]",
            f"[{style}]{verdict.label or verdict.type.value}[/{style}]" if style else verdict.type.value,
            verdict.dominant_direction.value,
            f"{group.strength} ({strength_label(group.strength)})",
            timeframes,
            findings,
        )

    console.print(table)


@main.command()
@signals_argument
@click.option("--rule", "-r", "rules", multiple=True, required=True, help="PATTERN:TIMEFRAME, repeat for each rule")
@click.pass_context
def search(ctx: click.Context, signals_file: Path, rules: List[str]) -> None:
    """Find instruments matching every pattern/timeframe rule."""
    parsed = [ConfluenceRule.parse(text) for text in rules]
    complete = [rule for rule in parsed if rule.is_complete]
    if len(complete) < 2:
        console.print("[yellow]Confluence search needs at least two complete rules[/yellow]")
        return

    engine = _build_engine(ctx, signals_file, None)
    matches = engine.search(complete)

    if not matches:
        console.print("[yellow]No instrument matches every rule[/yellow]")
        return

    table = Table(title=f"Confluence: {' + '.join(str(r) for r in complete)}", show_header=True,
                  header_style="bold magenta")
    table.add_column("Instrument", style="cyan")
    table.add_column("Matches", justify="right")
    table.add_column("Signals")
    for match in matches:
        table.add_row(
            f"{match.display_name}\n[dim]{match.instrument_id}[/dim]",
            str(match.match_count),
            "\n".join(
                f"{m.rule}  {m.signal.direction.value} {m.signal.confidence:.0%}" for m in match.matches
            ),
        )
    console.print(table)


@main.command()
@signals_argument
@click.argument("instrument")
@click.option("--capital", type=float, required=True, help="Available capital")
@click.option("--lot-size", type=int, default=None, help="Contract multiplier (default from config)")
@click.option("--price", type=float, default=None, help="Estimated contract price")
@click.option(
    "--audit-log",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Append gate decisions to this rotating log file"
)
@now_option
@click.pass_context
def gate(
    ctx: click.Context,
    signals_file: Path,
    instrument: str,
    capital: float,
    lot_size: Optional[int],
    price: Optional[float],
    audit_log: Optional[Path],
    now: Optional[str],
) -> None:
    """Run the trade gate for one instrument."""
    logging_config = ctx.obj["config"].logging
    if audit_log or ctx.obj["verbose"]:
        get_gate_logger(
            level=logging_config.level,
            log_file=str(audit_log) if audit_log else None,
            console_output=ctx.obj["verbose"],
            max_size=logging_config.max_size,
            backup_count=logging_config.backup_count,
        )

    engine = _build_engine(ctx, signals_file, now)
    context = GateContext(available_capital=capital, lot_size=lot_size, estimated_contract_price=price)
    result = engine.propose_trade(instrument, context)

    if not result.approved:
        console.print(Panel(
            f"{result.rejection.value}\n{result.detail}",
            title=f"Rejected: {instrument}",
            style="red",
        ))
        return

    proposal = result.proposal
    table = Table(title=f"Order Proposal: {instrument}", show_header=True, header_style="bold magenta")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Pattern", f"{proposal.signal.pattern_type} ({proposal.signal.timeframe})")
    table.add_row("Confidence", f"{proposal.signal.confidence:.0%}")
    table.add_row("Contract", f"{proposal.side} {proposal.strike:g} {proposal.option_type.value}")
    table.add_row("Lots", f"{proposal.lots} x {proposal.lot_size} = {proposal.quantity}")
    table.add_row("Allocation", f"{proposal.allocation:.0%} ({proposal.capital_used:,.2f})")
    table.add_row("Delta", f"{proposal.delta:.3f}")
    table.add_row("Entry", f"{proposal.contract_entry:.2f}")
    table.add_row("Stop Loss", f"{proposal.contract_stop:.2f}")
    for i, target in enumerate(proposal.contract_targets, start=1):
        table.add_row(f"Target {i}", f"{target:.2f}" if target is not None else "DM")
    console.print(table)


@main.command()
@signals_argument
@now_option
@click.pass_context
def summary(ctx: click.Context, signals_file: Path, now: Optional[str]) -> None:
    """Show active/completed counts and per-pattern outcomes."""
    engine = _build_engine(ctx, signals_file, now)
    totals = engine.summary()

    table = Table(title="Pattern Summary", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Active", str(totals.total_active))
    table.add_row("Completed", str(totals.total_completed))
    table.add_row("Wins / Losses", f"{totals.wins} / {totals.losses}")
    table.add_row("Win Rate", f"{totals.win_rate:.1%}")
    table.add_row("Total P&L", f"{totals.total_pnl:,.2f}")
    console.print(table)

    stats = engine.pattern_stats()
    if stats:
        by_type = Table(title="By Pattern", show_header=True, header_style="bold magenta")
        by_type.add_column("Pattern", style="cyan")
        by_type.add_column("Occurrences", justify="right")
        by_type.add_column("Win Rate", justify="right")
        by_type.add_column("Avg P&L", justify="right")
        for pattern_type, entry in sorted(stats.items(), key=lambda kv: -kv[1].occurrences):
            by_type.add_row(
                pattern_type,
                str(entry.occurrences),
                f"{entry.win_rate:.1%}" if entry.completed else "-",
                f"{entry.avg_pnl:,.2f}" if entry.completed else "-",
            )
        console.print(by_type)


if __name__ == "__main__":
    main()
