# display.py
# All terminal output for the video agent.
#
# This module owns presentation entirely. The engines and the registry never
# format strings; they call named functions here. Swap this file to change
# the entire UI.
#
# Colour language:
#   cyan    task lifecycle and routing events
#   blue    reasoning engine calls and replies
#   yellow  ledger checkpoints and retries
#   green   success / confirmed
#   red     failures, halts, integrity breaches
#   magenta capability dispatches

import json
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from video_agent.models import CapabilityResult, CompletedCall, ExecutionPlan, InvocationRequest, PlannedStep

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: Any, max_len: int = 120) -> str:
    if not isinstance(value, str):
        value = json.dumps(value, default=str)
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def set_quiet(flag: bool) -> None:
    console.quiet = flag


@contextmanager
def quiet() -> Iterator[None]:
    """Silence all output inside the block (used by tests and embedding hosts)."""
    previous = console.quiet
    console.quiet = True
    try:
        yield
    finally:
        console.quiet = previous


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------


def banner(model: str, strategy: str, capabilities: Sequence[str]) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Video Agent[/bold cyan]\n"
            "[dim]Plan-then-execute or conversational tool-calling over a capability registry[/dim]\n\n"
            f"[dim]Model      :[/dim] [white]{model}[/white]\n"
            f"[dim]Strategy   :[/dim] [white]{strategy}[/white]\n"
            f"[dim]Capability :[/dim] [white]{', '.join(capabilities)}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def task_start(task_id: str, strategy: str, text: str) -> None:
    console.print()
    console.print(Rule(f"[cyan]TASK {task_id} · {strategy}[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{text}[/white]",
            title=_label("USER REQUEST", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def capability_registered(name: str) -> None:
    console.print(f"[dim cyan]  + capability[/dim cyan] [white]{name}[/white]")


def capability_dispatched(name: str, success: bool, duration_ms: int, error: str | None) -> None:
    if success:
        console.print(
            f"  [magenta]Dispatch[/magenta] [bold white]{name}[/bold white]"
            f"  [green]ok[/green] [dim]{duration_ms}ms[/dim]"
        )
    else:
        console.print(
            f"  [magenta]Dispatch[/magenta] [bold white]{name}[/bold white]"
            f"  [red]failed[/red] [dim]{duration_ms}ms[/dim]  [dim red]{_mono(error or '', 140)}[/dim red]"
        )


# ---------------------------------------------------------------------------
# Plan display
# ---------------------------------------------------------------------------


def _step_table(steps: Sequence[PlannedStep], border: str) -> Table:
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style=border,
        show_header=True,
        header_style=f"bold {border}",
        padding=(0, 1),
    )
    table.add_column("ID", justify="center", width=10)
    table.add_column("Capability", style="bold white", width=18)
    table.add_column("Params", style="dim white", width=32)
    table.add_column("Depends", style="white", width=12)
    table.add_column("Condition", style="dim white")

    for step in steps:
        table.add_row(
            step.id,
            step.capability + (" [dim](opt)[/dim]" if step.optional else ""),
            _mono(step.params, 30),
            ", ".join(step.depends_on),
            step.condition or "",
        )
    return table


def plan_parsed(plan: ExecutionPlan) -> None:
    console.print()
    console.print(
        Panel(
            _step_table(plan.steps, "cyan"),
            title=_label("PLAN PARSED", "cyan"),
            subtitle=f"[dim]{_mono(plan.strategy or plan.analysis, 80)}[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


def ledger_committed(root: str, total: int) -> None:
    console.print(
        f"  [bold yellow]Ledger root[/bold yellow] [white]{root or '-'}[/white]"
        f"  [dim yellow]{total} step(s) committed[/dim yellow]"
    )


def replan_triggered(step: PlannedStep, reason: str) -> None:
    console.print()
    console.print(
        _label("REPLAN", "blue"),
        f"[blue] after [bold white]{step.id}[/bold white]: {reason}[/blue]",
    )


def replan_appended(steps: Sequence[PlannedStep], root: str) -> None:
    if not steps:
        console.print("  [dim blue]Replan returned no new steps.[/dim blue]")
        return
    console.print(
        Panel(
            _step_table(steps, "blue"),
            title=_label("REPLAN APPENDED", "blue"),
            subtitle=f"[dim]root {root[:24]}…[/dim]",
            border_style="blue",
            padding=(0, 1),
        )
    )


def replan_failed(message: str) -> None:
    console.print(f"  [yellow]Replan discarded:[/yellow] [dim]{_mono(message, 160)}[/dim]")


def replan_limit(limit: int) -> None:
    console.print(f"  [yellow]Replan limit reached ({limit}); continuing without replanning.[/yellow]")


# ---------------------------------------------------------------------------
# Plan execution
# ---------------------------------------------------------------------------


def step_start(index: int, total: int, step: PlannedStep) -> None:
    console.print()
    console.print(
        f"[bold cyan]  STEP [{index + 1}/{total}][/bold cyan]  "
        f"[white]{step.id}[/white] [dim]→[/dim] [bold white]{step.capability}[/bold white]"
    )


def step_skipped(step: PlannedStep, reason: str) -> None:
    console.print(f"  [dim]↳ skipped {step.id}: {reason}[/dim]")


def step_waiting(step: PlannedStep, reason: str) -> None:
    console.print(f"  [dim yellow]↳ waiting {step.id}: {reason}[/dim yellow]")


def condition_error(step: PlannedStep, message: str) -> None:
    console.print(f"  [yellow]⚠ condition on {step.id} could not be evaluated:[/yellow] [dim]{message}[/dim]")


def step_retry(step: PlannedStep, attempt: int, attempts: int, error: str | None) -> None:
    console.print(
        f"  [yellow]↻ retry {attempt}/{attempts} for {step.id}[/yellow]  [dim]{_mono(error or '', 120)}[/dim]"
    )


def step_succeeded(step: PlannedStep, result: CapabilityResult) -> None:
    detail = result.message or ", ".join(result.resources) or "ok"
    console.print(f"  [bold green]✓ {step.id}[/bold green]  [dim]{_mono(detail, 120)}[/dim]")


def optional_step_failed(step: PlannedStep, error: str | None) -> None:
    console.print(f"  [yellow]✗ optional step {step.id} failed, continuing:[/yellow] [dim]{error}[/dim]")


def required_step_failed(step: PlannedStep, error: str | None) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold red]Required step [white]{step.id}[/white] ({step.capability}) failed.[/bold red]\n"
            f"[white]{error}[/white]\n"
            "[dim]Plan execution stops here. Side effects already applied are kept.[/dim]",
            title=_label("STEP FAILED ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def integrity_breach(index: int, step: PlannedStep) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold red]Ledger hash mismatch at queue index {index} (step {step.id}).[/bold red]\n"
            "[white]The step changed after it was enumerated. Execution halted.[/white]",
            title=_label("INTEGRITY BREACH ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Conversation loop
# ---------------------------------------------------------------------------


def iteration_start(iteration: int, limit: int) -> None:
    console.print()
    console.print(Rule(f"[blue]ITERATION {iteration}/{limit}[/blue]", style="blue"))


def assistant_reply(text: str, invocations: int) -> None:
    if text:
        console.print(f"  [blue]Assistant[/blue]  [dim white]{_mono(text, 200)}[/dim white]")
    console.print(f"  [blue]Invocations[/blue] [white]{invocations}[/white]")


def tool_result(call: InvocationRequest, result: CapabilityResult) -> None:
    mark = "[bold green]✓[/bold green]" if result.success else "[bold red]✗[/bold red]"
    body = result.data if result.success else result.error
    console.print(
        f"  {mark} [bold white]{call.capability}[/bold white] [dim]{call.call_id}[/dim]"
        f"  [white]{_mono(body, 140)}[/white]"
    )


def loop_complete(iterations: int) -> None:
    console.print()
    console.print(f"[green]  Conversation finished after {iterations} iteration(s).[/green]")


def loop_exhausted(limit: int) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold yellow]Iteration cap of {limit} reached with invocations still pending.[/bold yellow]\n"
            "[dim]Task reported as incomplete.[/dim]",
            title=_label("ITERATIONS EXHAUSTED", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Task hosting
# ---------------------------------------------------------------------------


def task_registered(task_id: str) -> None:
    console.print(f"[dim cyan]  task {task_id} registered[/dim cyan]")


def task_progress(task_id: str, status: str, progress: int, message: str | None) -> None:
    console.print(f"[dim cyan]  [{task_id[:8]}] {status:<10} {progress:>3}%[/dim cyan]  [dim]{message or ''}[/dim]")


def runner_shutdown(submitted: int) -> None:
    console.print()
    console.print(_label("RUNNER", "cyan"), f"[cyan] shutting down, {submitted} task(s) submitted[/cyan]")


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def execution_summary(history: Sequence[CompletedCall]) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Step", justify="center", width=10)
    table.add_column("Capability", width=18)
    table.add_column("Try", justify="center", width=4)
    table.add_column("OK", justify="center", width=4)
    table.add_column("ms", justify="right", width=7)
    table.add_column("Detail", style="dim white")

    for record in history:
        ok = "[bold green]✓[/bold green]" if record.success else "[bold red]✗[/bold red]"
        detail = record.result.message if record.success else (record.error or "")
        table.add_row(
            record.step_id,
            record.capability,
            str(record.attempt),
            ok,
            str(record.duration_ms),
            _mono(detail, 60),
        )

    console.print(
        Panel(
            table,
            title="[dim]EXECUTION SUMMARY[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )


def final_result(outcome: Any) -> None:
    """Render a TaskOutcome."""
    output = outcome.output
    color = {"completed": "green", "incomplete": "yellow"}.get(outcome.status.value, "red")
    lines = [f"[bold]Status:[/bold] {outcome.status.value}"]
    if output is not None:
        lines.append(f"[bold]Title:[/bold]  {output.title or '-'}")
        lines.append(f"[bold]Final:[/bold]  {_mono(output.final, 200) or '-'}")
    if outcome.error:
        lines.append(f"[bold]Error:[/bold]  {outcome.error}")
    if outcome.ledger_root:
        lines.append(f"[dim]Ledger root {outcome.ledger_root}[/dim]")

    console.print()
    console.print(
        Panel(
            "\n".join(lines),
            title=_label("RESULT", color),
            border_style=color,
            padding=(1, 2),
        )
    )
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{reason}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
