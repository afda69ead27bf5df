# display.py
# All terminal output for the SO101 setup toolkit.
#
# This module owns presentation entirely. Steps, the orchestrator and the
# dataset utilities never format console strings; they call named
# functions here. Each call also writes a plain line to the run log.
#
# Colour language:
#   cyan: step boundaries / orchestration
#   blue: informational
#   green: success / completed
#   yellow: warnings, reboot notices
#   red: failures, halts
#   dim: commands and raw detail

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from so101_toolkit.models import StepInfo, StepRecord, TagResult
from so101_toolkit.runlog import get_run_logger

console = Console()
_log = get_run_logger()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Headers
# ---------------------------------------------------------------------------


def banner(title: str, subtitle: str, log_file: object = None) -> None:
    console.print()
    body = f"[bold cyan]{title}[/bold cyan]\n[dim]{subtitle}[/dim]"
    if log_file is not None:
        body += f"\n\n[dim]Log file :[/dim] [white]{log_file}[/white]"
    console.print(Panel.fit(body, border_style="cyan", padding=(1, 4)))
    _log.info("%s started", title)
    if log_file is not None:
        _log.info("Log file: %s", log_file)


def header(title: str) -> None:
    console.print()
    console.print(Rule(f"[cyan]{title}[/cyan]", style="cyan"))
    _log.info("== %s ==", title)


# ---------------------------------------------------------------------------
# Levelled messages
# ---------------------------------------------------------------------------


def info(message: str) -> None:
    console.print(f"[blue][INFO][/blue] {message}", highlight=False)
    _log.info("[INFO] %s", message)


def success(message: str) -> None:
    console.print(f"[green][SUCCESS][/green] {message}", highlight=False)
    _log.info("[SUCCESS] %s", message)


def warning(message: str) -> None:
    console.print(f"[yellow][WARNING][/yellow] {message}", highlight=False)
    _log.info("[WARNING] %s", message)


def error(message: str) -> None:
    console.print(f"[red][ERROR][/red] {message}", highlight=False)
    _log.info("[ERROR] %s", message)


def detail(message: str) -> None:
    console.print(f"  [dim]{message}[/dim]", highlight=False)
    _log.info("%s", message)


def command(cmd: list[str]) -> None:
    line = " ".join(cmd)
    console.print(f"  [dim]$ {_mono(line, 160)}[/dim]", highlight=False)
    _log.info("Running: %s", line)


def output(line: str) -> None:
    console.print(f"    [dim]{escape(line)}[/dim]", highlight=False)
    _log.info("  %s", line)


# ---------------------------------------------------------------------------
# Step lifecycle
# ---------------------------------------------------------------------------


def step_start(step: StepInfo) -> None:
    console.print()
    console.print(Rule(style="cyan"))
    console.print(
        _label("STEP", "cyan"),
        f"[bold cyan] Step {step.number}: {step.name}[/bold cyan]",
    )
    console.print(Rule(style="cyan"))
    _log.info("[STEP] Step %d: %s", step.number, step.name)


def step_skipped(step: StepInfo) -> None:
    info(f"Step {step.number} already completed (marker found)")
    info("Skipping to next step...")


def step_already_done(step: StepInfo, marker_path: object) -> None:
    success(f"{step.name} is already in place.")
    info(f"If you need to re-run it, remove the marker: {marker_path}")


def step_failed(step: StepInfo, reason: str, remedy: str | None = None) -> None:
    body = f"[bold red]Step {step.number} ({step.name}) failed.[/bold red]\n\n[white]{reason}[/white]"
    if remedy:
        body += f"\n\n[dim]{remedy}[/dim]"
    console.print()
    console.print(
        Panel(body, title=_label("STEP FAILED ✗", "red"), border_style="red", padding=(0, 2))
    )
    _log.info("[ERROR] Step %d failed: %s", step.number, reason)
    if remedy:
        _log.info("[ERROR] %s", remedy)


def step_completed(step: StepInfo, marker_path: object) -> None:
    success(f"Step {step.number} ({step.name}) completed")
    detail(f"Marker created: {marker_path}")


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def progress(steps: list[StepInfo], done: set[str]) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("Step", justify="center", width=6)
    table.add_column("Name", style="bold white")
    table.add_column("Status", justify="center", width=12)

    for step in steps:
        finished = step.marker in done
        status = "[bold green]✓ done[/bold green]" if finished else "[dim]○ pending[/dim]"
        table.add_row(str(step.number), step.name, status)
        _log.info("%s Step %d: %s", "✓" if finished else "○", step.number, step.name)

    completed = sum(1 for step in steps if step.marker in done)
    console.print(
        Panel(
            table,
            title=_label("SETUP PROGRESS", "cyan"),
            subtitle=f"[dim]{completed}/{len(steps)} steps completed[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )
    _log.info("Progress: %d/%d steps completed", completed, len(steps))


def run_summary(records: list[StepRecord]) -> None:
    if not records:
        return
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Step", justify="center", width=6)
    table.add_column("Name", width=24)
    table.add_column("Exit", justify="center", width=6)
    table.add_column("Outcome", style="dim white")

    for record in records:
        outcome = "skipped (marker)" if record.skipped else _mono(record.message, 60)
        table.add_row(str(record.number), record.name, str(int(record.exit_code)), outcome)

    console.print(Panel(table, title="[dim]RUN SUMMARY[/dim]", border_style="dim", padding=(0, 1)))


def reboot_required(resume_hint: str) -> None:
    console.print()
    console.print(
        Panel(
            "[bold yellow]A system reboot is required before setup can continue.[/bold yellow]\n\n"
            "[white]After rebooting:\n"
            "  1. Log back in\n"
            f"  2. Run: {resume_hint}[/white]\n\n"
            "[dim]Completed steps are remembered; the next run resumes where this one stopped.[/dim]",
            title=_label("REBOOT REQUIRED", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )
    _log.info("[WARNING] Reboot required; resume with: %s", resume_hint)


def setup_complete(lines: list[str], log_dir: object) -> None:
    console.print()
    console.print(
        Panel(
            "\n".join(f"[green]✓[/green] [white]{line}[/white]" for line in lines),
            title=_label("SETUP COMPLETED", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    _log.info("[SUCCESS] All setup steps completed successfully!")
    for line in lines:
        _log.info("  ✓ %s", line)
    info(f"Log files are saved in: {log_dir}")


def next_steps(title: str, lines: list[str]) -> None:
    console.print()
    console.print(f"[bold blue]{title}[/bold blue]")
    _log.info("%s", title)
    for line in lines:
        console.print(f"  [white]{line}[/white]", highlight=False)
        _log.info("  %s", line)


# ---------------------------------------------------------------------------
# Dataset utilities
# ---------------------------------------------------------------------------


def tag_summary(results: list[TagResult]) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Dataset", style="white")
    table.add_column("Version", width=16)
    table.add_column("Tag", justify="center", width=14)

    for result in results:
        if result.error:
            status, outcome = "[bold red]✗ error[/bold red]", result.error
        elif result.created:
            status, outcome = "[bold green]created[/bold green]", "created"
        else:
            status, outcome = "[green]exists[/green]", "exists"
        table.add_row(result.repo_id, result.version or "-", status)
        _log.info("%s %s %s", result.repo_id, result.version or "-", outcome)

    console.print(Panel(table, title="[dim]CODEBASE VERSION TAGS[/dim]", border_style="dim", padding=(0, 1)))


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


def done(message: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{message}[/white]",
            title=_label("DONE", "green"),
            border_style="green",
            padding=(0, 2),
        )
    )
    console.print()
    _log.info("[SUCCESS] %s", message)


def halt(reason: str, remedy: str | None = None) -> None:
    body = f"[bold white]{reason}[/bold white]"
    if remedy:
        body += f"\n\n[dim]{remedy}[/dim]"
    console.print()
    console.print(Panel(body, title=_label("HALT", "red"), border_style="red", padding=(0, 2)))
    console.print()
    _log.info("[ERROR] %s", reason)
    if remedy:
        _log.info("[ERROR] %s", remedy)
