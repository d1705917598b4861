# SAKUIN CLI - Index Commands
"""
CLI - index コマンド群
インデックス更新と状態管理
"""

from pathlib import Path
from typing import Optional
import json

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from sakuin.cli.main import (
    OutputFormat,
    configure_logging,
    get_config,
    print_error,
    print_success,
    print_warning,
)
from sakuin.errors import SakuinError
from sakuin.index.incremental.types import (
    PageOutcome,
    RunOptions,
    RunReport,
    parse_outcomes,
)

console = Console()
index_app = typer.Typer(help="Index management commands")

OUTCOME_STYLES = {
    PageOutcome.INDEXED: "green",
    PageOutcome.UNCHANGED: "dim",
    PageOutcome.DELETED: "yellow",
    PageOutcome.DISABLED: "yellow",
    PageOutcome.FAILED: "red",
    PageOutcome.LOCKED: "red",
}


def _print_progress(position: int, total: int, doc_id: str, outcome: PageOutcome):
    style = OUTCOME_STYLES.get(outcome, "white")
    console.print(
        f"{position} of {total}: {doc_id}... [{style}]{outcome.value}[/{style}]",
        highlight=False,
    )


def _print_report(report: RunReport):
    """実行結果を表示"""
    lines = [f"  {outcome.value.capitalize():<10} {report.count(outcome):,}" for outcome in PageOutcome]
    border = "green" if report.succeeded else "red"
    title = "Index Update Complete" if report.succeeded else "Index Update Failed"
    if report.cancelled:
        title = "Index Update Cancelled"
        border = "yellow"
    console.print(Panel.fit(
        f"[bold]Documents:[/bold] {report.total:,}\n" + "\n".join(lines),
        title=title,
        border_style=border,
    ))


def _resume_hint(report: RunReport, doc_id: Optional[str]) -> Optional[str]:
    """再開用の引数（再開できない場合は None）"""
    if report.resume is not None:
        hint = f"--temp-file {report.resume.queue_path} --start {report.resume.cursor}"
        token = report.resume.lock_token
    elif doc_id and report.lock_token:
        # --id 実行ではキューが無いのでページとロックだけを渡す
        hint = f"--id {doc_id}"
        token = report.lock_token
    else:
        return None
    if token:
        hint += f" --lock-token {token}"
    return hint


@index_app.command("update")
def index_update(
    clear: bool = typer.Option(
        False, "--clear", "-c", help="Clear the index before updating (implies --force)"
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Reindex pages even if they are up to date"
    ),
    doc_id: Optional[str] = typer.Option(
        None, "--id", "-i", help="Only update the given page"
    ),
    namespace: Optional[str] = typer.Option(
        None, "--namespace", "-n", help="Only update pages in the given namespace"
    ),
    max_runs: Optional[int] = typer.Option(
        None, "--max-runs", "-r", help="Restart after indexing this many pages"
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Don't produce any progress output"
    ),
    start: int = typer.Option(
        0, "--start", "-s", help="Start at this line of the temp file"
    ),
    temp_file: Optional[Path] = typer.Option(
        None, "--temp-file", "-t", help="Resume from an existing queue file"
    ),
    remove_locks: bool = typer.Option(
        False, "--remove-locks", "-l", help="Remove an existing indexer lock first"
    ),
    lock_token: Optional[str] = typer.Option(
        None, "--lock-token", hidden=True, help="Lock handed off by a previous process"
    ),
    carry_outcomes: Optional[str] = typer.Option(
        None, "--carry-outcomes", hidden=True, help="Outcome counts of previous processes"
    ),
    depth: int = typer.Option(
        0, "--depth", help="Maximum namespace depth to walk (0 = unlimited)"
    ),
    respect_acl: bool = typer.Option(
        False, "--respect-acl", help="Skip pages the access checker does not allow"
    ),
    detect_deleted: Optional[bool] = typer.Option(
        None, "--detect-deleted/--no-detect-deleted",
        help="Queue indexed pages whose content was removed",
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", help="Config file path"
    ),
    output: OutputFormat = typer.Option(
        OutputFormat.text, "--output", "-o", help="Output format"
    ),
):
    """Update the search index

    Examples:
        sakuin index update
        sakuin index update --namespace wiki --force
        sakuin index update --id wiki:start
    """
    from sakuin.controller.restart import run_until_complete

    try:
        cfg, config_path = get_config(config)
        configure_logging(cfg, quiet=quiet)
    except (SakuinError, ValueError) as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(1)

    try:
        carried = parse_outcomes(carry_outcomes) if carry_outcomes else {}
    except ValueError as e:
        print_error(f"Invalid --carry-outcomes: {e}")
        raise typer.Exit(1)

    options = RunOptions(
        clear=clear,
        force=force,
        doc_id=doc_id,
        namespace=namespace or "",
        max_runs=max_runs if max_runs is not None else cfg.max_runs,
        quiet=quiet,
        start=start,
        temp_file=temp_file.resolve() if temp_file else None,
        remove_locks=remove_locks,
        lock_token=lock_token,
        depth=depth,
        skip_acl=cfg.skip_acl and not respect_acl,
        detect_deleted=cfg.detect_deleted if detect_deleted is None else detect_deleted,
        config_path=config_path,
        carried_outcomes=carried,
    )

    show_progress = not quiet and output == OutputFormat.text

    try:
        report = run_until_complete(
            cfg,
            options,
            progress=_print_progress if show_progress else None,
            notify=(lambda msg: console.print(msg, highlight=False)) if show_progress else None,
        )
    except SakuinError as e:
        print_error(f"Index update failed: {e.message}")
        raise typer.Exit(1)

    if output == OutputFormat.json:
        console.print_json(json.dumps(report.to_dict()))
    elif not quiet:
        _print_report(report)

    if not report.succeeded:
        print_error(report.error or "Index update failed")
        if output == OutputFormat.text:
            for entry in report.errors:
                if entry["message"] != report.error:
                    print_warning(f"{entry['code']}: {entry['message']}")

    hint = _resume_hint(report, doc_id)
    if hint and (report.cancelled or not report.succeeded):
        console.print(f"Resume with: [cyan]sakuin index update {hint}[/cyan]")
    raise typer.Exit(report.exit_code)


@index_app.command("status")
def index_status(
    config: Optional[Path] = typer.Option(
        None, "--config", help="Config file path"
    ),
    output: OutputFormat = typer.Option(
        OutputFormat.text, "--output", "-o", help="Output format"
    ),
):
    """Show current index status"""
    from sakuin.api.engine import IndexEngine

    try:
        cfg, _ = get_config(config)
        summary = IndexEngine.from_config(cfg).summary()
    except (SakuinError, ValueError) as e:
        print_error(f"Failed to get status: {e}")
        raise typer.Exit(1)

    if output == OutputFormat.json:
        console.print_json(json.dumps(summary.to_dict()))
        return

    table = Table(title="SAKUIN Index Status")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Index Directory", str(cfg.index_path))
    table.add_row("Format Version", summary.format_version)
    table.add_row("Pages", f"{summary.page_count:,}")
    table.add_row("Markers", f"{summary.marker_count:,}")
    table.add_row("Words", f"{summary.word_count:,}")
    table.add_row("Partitions", f"{summary.partition_count:,}")

    if summary.lock_held:
        owner = f"pid {summary.lock_owner_pid}" if summary.lock_owner_pid else "unknown owner"
        state = "[green]running[/green]" if summary.lock_owner_alive else "[red]stale[/red]"
        table.add_row("Lock", f"[yellow]held[/yellow] ({owner}, {state})")
    else:
        table.add_row("Lock", "[green]free[/green]")

    console.print(table)


@index_app.command("unlock")
def index_unlock(
    config: Optional[Path] = typer.Option(
        None, "--config", help="Config file path"
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Remove the lock even if its owner is still running"
    ),
):
    """Remove a stale indexer lock"""
    from sakuin.controller.lock import RunLock

    try:
        cfg, _ = get_config(config)
        lock = RunLock(cfg.lock_path)

        if not lock.exists():
            print_warning("No indexer lock present")
            return

        owner = lock.owner_info()
        if owner is not None and owner.alive and not force:
            print_error(f"Lock is held by running process {owner.pid}")
            console.print("Use --force to remove it anyway")
            raise typer.Exit(1)

        lock.remove()
        print_success(f"Removed lock {lock.path}")

    except SakuinError as e:
        print_error(f"Failed to remove lock: {e}")
        raise typer.Exit(1)


@index_app.command("clear")
def index_clear(
    config: Optional[Path] = typer.Option(
        None, "--config", help="Config file path"
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmation"
    ),
):
    """Clear the index (remove all partitions and markers)"""
    from sakuin.api.engine import IndexEngine

    if not force:
        confirm = typer.confirm("Are you sure you want to clear the index?")
        if not confirm:
            console.print("[dim]Cancelled[/dim]")
            raise typer.Exit(0)

    try:
        cfg, _ = get_config(config)
        configure_logging(cfg)
        engine = IndexEngine.from_config(cfg)
        engine.lock.acquire()
        try:
            engine.clear()
        finally:
            engine.lock.release()

        print_success("Index cleared successfully")

    except SakuinError as e:
        print_error(f"Failed to clear index: {e.message}")
        raise typer.Exit(1)
