"""
Rich renderers for the drill CLI.

Everything here only formats data it is given; no engine or store access.
"""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from timestables.competition.service import PlayerResult
from timestables.engine.comparison import ExerciseStatus, SessionComparison
from timestables.engine.state import DrillErrorState
from timestables.exercises.catalog import Exercise, get_correct_answer
from timestables.storage.schemas import ExerciseAttempt, HistoryEntry, Round, SessionSummary

console = Console()

STATUS_STYLES: dict[ExerciseStatus, tuple[str, str]] = {
    ExerciseStatus.NEW_RECORD: ("bold magenta", "New record"),
    ExerciseStatus.IMPROVED: ("green", "Improved"),
    ExerciseStatus.MASTERED: ("cyan", "Mastered"),
    ExerciseStatus.SAME: ("white", "Same"),
    ExerciseStatus.DETERIORATED: ("red", "Slower"),
    ExerciseStatus.NEW: ("yellow", "New"),
}

TREND_MARKS = {
    "improved": "[green]↑[/]",
    "deteriorated": "[red]↓[/]",
    "same": "[dim]=[/]",
    "first": "",
}


def _signed(value: float, unit: str = "", digits: int = 1) -> str:
    return f"{value:+.{digits}f}{unit}"


def render_exercise_header(round_number: int, position: int, total: int, time_limit: int) -> None:
    console.print(
        f"\n[bold cyan]Round {round_number}[/]  [dim]{position}/{total}  ·  {time_limit}s per exercise  ·  q to stop[/]"
    )


def render_feedback(attempt: ExerciseAttempt, exercise: Exercise, previous: ExerciseAttempt | None) -> None:
    mark = TREND_MARKS.get(attempt.result, "")
    if attempt.correct:
        line = f"[green]✓ Correct[/] in {attempt.time_taken_sec:.1f}s {mark}"
    elif attempt.user_answer is None:
        line = f"[yellow]⏱ Time's up.[/] {exercise.prompt} = {get_correct_answer(exercise)} {mark}"
    elif attempt.user_answer == get_correct_answer(exercise):
        line = f"[yellow]⏱ Right, but too slow.[/] {exercise.prompt} = {get_correct_answer(exercise)} {mark}"
    else:
        line = f"[red]✗ {exercise.prompt} = {get_correct_answer(exercise)}[/] {mark}"
    if previous is not None:
        previous_text = f"{previous.time_taken_sec:.1f}s" if previous.correct else "wrong"
        line += f"  [dim](last round: {previous_text})[/]"
    console.print(line)


def render_round_summary(round_: Round, time_limit: int) -> None:
    attempts = round_.exercises
    failed = [a for a in attempts if not a.correct]
    correct = len(attempts) - len(failed)

    body = (
        f"Correct: [green]{correct}[/]/{len(attempts)}\n"
        f"Total time: {round_.total_time_sec:.1f}s\n"
        f"Time limit: {time_limit}s"
    )
    if not failed:
        body += "\n\n[bold green]Every exercise answered correctly in time![/]"
    console.print(Panel(body, title=f"Round {round_.round_number} complete", border_style="cyan"))

    if failed:
        table = Table(title="To practise again")
        table.add_column("Exercise", style="cyan")
        table.add_column("Your answer")
        table.add_column("Correct", style="green")
        table.add_column("Time", justify="right")
        for attempt in failed:
            a, b = attempt.factors
            answer = "-" if attempt.user_answer is None else str(attempt.user_answer)
            table.add_row(f"{a} × {b}", answer, str(a * b), f"{attempt.time_taken_sec:.1f}s")
        console.print(table)


def render_comparison(comparison: SessionComparison) -> None:
    current = comparison.current_session
    lines = [
        f"Rounds: {current.total_rounds}",
        f"Success rate: {current.success_rate:.0f}%",
        f"Average time: {current.average_time_sec:.2f}s",
    ]
    if comparison.is_first_session:
        lines.append("\n[dim]First session: nothing to compare with yet.[/]")
    else:
        delta = comparison.improvement
        lines.append(
            f"\nVs previous session: success {_signed(delta.success_rate, '%', 0)}, "
            f"avg time {_signed(delta.average_time, 's', 2)}, rounds {delta.total_rounds:+d}"
        )
    console.print(Panel("\n".join(lines), title="Session complete", border_style="green"))

    stats = comparison.stats
    counts = "  ".join(
        f"[{style}]{label}: {stats.count(status)}[/]"
        for status, (style, label) in STATUS_STYLES.items()
        if stats.count(status)
    )
    if counts:
        console.print(counts)

    table = Table(title="Exercises")
    table.add_column("Exercise", style="cyan")
    table.add_column("Now", justify="right")
    table.add_column("Before", justify="right")
    table.add_column("Best", justify="right")
    table.add_column("Status")
    for item in comparison.exercise_improvements:
        style, label = STATUS_STYLES[item.status]
        now = f"{item.current_time:.1f}s" if item.current_correct else "✗"
        if item.previous_correct is None:
            before = "-"
        else:
            before = f"{item.previous_time:.1f}s" if item.previous_correct else "✗"
        best = f"{item.best_time:.1f}s" if item.best_time is not None else "-"
        a, b = item.factors
        table.add_row(f"{a} × {b}", now, before, best, f"[{style}]{label}[/]")
    console.print(table)


def render_history(summaries: Sequence[SessionSummary]) -> None:
    if not summaries:
        console.print("[yellow]No finished sessions yet.[/]")
        return
    table = Table(title="Finished sessions")
    table.add_column("Started", style="dim")
    table.add_column("Rounds", justify="right")
    table.add_column("Exercises", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Avg time", justify="right")
    for summary in summaries:
        table.add_row(
            summary.start_time[:16].replace("T", " "),
            str(summary.total_rounds),
            str(summary.total_exercises),
            f"{summary.success_rate:.0f}%",
            f"{summary.average_time_sec:.2f}s",
        )
    console.print(table)


def render_exercise_history(exercise: Exercise, entries: Sequence[HistoryEntry], best_time: float | None) -> None:
    if not entries:
        console.print(f"[yellow]No attempts at {exercise.prompt} yet.[/]")
        return
    table = Table(title=f"{exercise.prompt} = {get_correct_answer(exercise)}")
    table.add_column("When", style="dim")
    table.add_column("Result")
    table.add_column("Time", justify="right")
    for entry in entries:
        result = "[green]✓[/]" if entry.correct else "[red]✗[/]"
        table.add_row(entry.attempted_at[:19].replace("T", " "), result, f"{entry.time_taken_sec:.1f}s")
    console.print(table)
    if best_time is not None:
        console.print(f"Best time: [bold green]{best_time:.1f}s[/]")


def render_preferences(time_limit: int, tables: Sequence[int], backend: str, location: str) -> None:
    table = Table(title="timestables configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Time limit", f"{time_limit}s")
    table.add_row("Tables", ", ".join(str(t) for t in tables))
    table.add_row("Store backend", backend)
    table.add_row("Store location", location)
    console.print(table)


def render_error(error: DrillErrorState) -> None:
    console.print(Panel(error.message, title="Something went wrong", border_style="red"))


def render_results(results: Sequence[PlayerResult]) -> None:
    table = Table(title="Results")
    table.add_column("#", justify="right")
    table.add_column("Player", style="cyan")
    table.add_column("Correct", justify="right", style="green")
    table.add_column("Wrong", justify="right", style="red")
    table.add_column("Accuracy", justify="right")
    table.add_column("Time", justify="right")
    for result in results:
        medal = {1: "🥇", 2: "🥈", 3: "🥉"}.get(result.rank, str(result.rank))
        table.add_row(
            medal,
            result.player_name,
            str(result.correct_answers),
            str(result.wrong_answers),
            f"{result.accuracy:.0f}%",
            f"{result.total_time / 1000:.1f}s",
        )
    console.print(table)
