"""
timestables CLI - Multiplication table drill in the terminal.

Usage:
    timestables start                     # Drill the stored table selection
    timestables start --tables 3,4 -t 8   # Tables 3 and 4, 8 seconds each
    timestables resume                    # Continue an unfinished session
    timestables history                   # Finished sessions
    timestables history --exercise 7x8    # Every attempt at 7 × 8
    timestables config show
    timestables config set-time-limit 15
    timestables config set-tables 6,7,8
    timestables compete --players Ann,Bob # Hot-seat race on one terminal
"""

from __future__ import annotations

import time
from typing import Annotated, NoReturn

import typer
from loguru import logger
from rich.prompt import Confirm, Prompt

from config import get_settings
from timestables import __version__
from timestables.cli import visuals
from timestables.cli.visuals import console
from timestables.competition import CompetitionService, InMemoryRoomStore, RoomSettings
from timestables.competition.service import COUNTDOWN_SECONDS
from timestables.core.errors import DrillError, ValidationError
from timestables.core.logging import configure_logging
from timestables.core.preferences import Preferences
from timestables.engine import DrillEngine, Phase
from timestables.exercises.catalog import Exercise, normalize_tables, parse_answer, parse_exercise_id
from timestables.storage import AttemptHistoryStore, SessionSummaryStore, create_store

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="timestables",
    help="Multiplication table drill: answer fast, retry what you missed.",
    add_completion=False,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Show or change drill preferences")
app.add_typer(config_app, name="config")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold]timestables[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show the version and exit"),
    ] = False,
) -> None:
    """Multiplication table drill."""


def _parse_tables(raw: str) -> list[int]:
    try:
        values = [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise ValidationError(f"Tables must be comma-separated numbers, got {raw!r}") from None
    return normalize_tables(values)


def _open_store():
    settings = get_settings()
    try:
        return settings, create_store(settings)
    except DrillError as exc:
        console.print(f"[red]✗ {exc.message}[/]")
        raise typer.Exit(1) from exc


def _fail(exc: DrillError) -> NoReturn:
    console.print(f"[red]✗ {exc.message}[/]")
    raise typer.Exit(1)


# =============================================================================
# Drill Commands
# =============================================================================


@app.command()
def start(
    tables: Annotated[
        str | None, typer.Option("--tables", help="Comma-separated tables, e.g. 3,4,7")
    ] = None,
    time_limit: Annotated[
        int | None, typer.Option("--time-limit", "-t", help="Seconds per exercise (saved as preference)")
    ] = None,
) -> None:
    """
    Start a new practice session.

    Examples:
        timestables start
        timestables start --tables 6,7,8
        timestables start -t 5
    """
    settings, store = _open_store()
    preferences = Preferences(store, settings)
    try:
        selected = _parse_tables(tables) if tables else None
        if time_limit is not None:
            preferences.set_time_limit(time_limit)
    except DrillError as exc:
        _fail(exc)

    engine = DrillEngine(store, preferences)
    try:
        engine.start_session(selected)
        _run_drill(engine)
    finally:
        engine.close()


@app.command()
def resume() -> None:
    """Continue the unfinished session, if there is one."""
    settings, store = _open_store()
    engine = DrillEngine(store, Preferences(store, settings))
    try:
        engine.resume_session()
        if engine.phase == Phase.IDLE and engine.state.error is None:
            console.print("[yellow]No unfinished session. Run `timestables start`.[/]")
            return
        _run_drill(engine)
    finally:
        engine.close()


def _run_drill(engine: DrillEngine) -> None:
    """Drive the engine from terminal input until the session ends or the user leaves."""
    try:
        while True:
            state = engine.state

            if state.error is not None:
                visuals.render_error(state.error)
                if state.error.retryable and Confirm.ask("Try again?", default=True):
                    engine.retry_after_error()
                    continue
                console.print("[dim]Your progress up to the last saved point is kept.[/]")
                return

            if state.phase == Phase.EXERCISE:
                _ask_exercise(engine)

            elif state.phase == Phase.SUMMARY:
                visuals.render_round_summary(state.last_completed_round, engine.preferences.time_limit())
                failed = state.last_completed_round.failed_exercise_ids()
                question = "Practise the missed exercises?" if failed else "Finish the session?"
                if not Confirm.ask(question, default=True):
                    console.print("[dim]Session saved. Run `timestables resume` to continue.[/]")
                    return
                engine.continue_to_next_round()

            elif state.phase == Phase.COMPLETE:
                visuals.render_comparison(state.comparison)
                return

            else:
                console.print("[yellow]Session stopped.[/]")
                return
    except (KeyboardInterrupt, EOFError):
        console.print("\n[dim]Session saved. Run `timestables resume` to continue.[/]")


def _ask_exercise(engine: DrillEngine) -> None:
    state = engine.state
    exercise = state.current_exercise
    if exercise is None:
        return
    previous = engine.previous_attempt(exercise.exercise_id)

    if not state.awaiting_acknowledgement:
        visuals.render_exercise_header(
            state.session.current_round,
            state.current_exercise_index + 1,
            len(state.pending_exercises),
            engine.preferences.time_limit(),
        )
        raw = Prompt.ask(f"[bold]{exercise.prompt}[/] =", default="", show_default=False)
        if raw.strip().lower() == "q":
            engine.stop_session()
            return

        # Input typed after the timeout fired is dropped.
        if not engine.state.awaiting_acknowledgement:
            try:
                answer = parse_answer(raw)
            except ValidationError as exc:
                console.print(f"[yellow]{exc.message}[/]")
                return
            attempt = engine.submit_answer(answer, engine.elapsed_seconds(), exercise_id=exercise.exercise_id)
            if attempt is not None and attempt.correct:
                visuals.render_feedback(attempt, exercise, previous)
                return

    feedback = engine.state.feedback
    if feedback is None:
        return
    visuals.render_feedback(feedback, exercise, previous)
    if _ask_correction(exercise):
        engine.acknowledge()
    else:
        engine.stop_session()


def _ask_correction(exercise: Exercise) -> bool:
    """Have the user retype the exercise and its product. False when they quit instead."""
    a, b = exercise.factors
    expected = (a, b, a * b)
    console.print("[yellow]Type the exercise and the right answer to continue.[/]")
    while True:
        typed = []
        for label in ("First number", "Second number", "Answer"):
            raw = Prompt.ask(f"  {label}", default="", show_default=False)
            if raw.strip().lower() == "q":
                return False
            typed.append(raw)
        try:
            values = tuple(parse_answer(value) for value in typed)
        except ValidationError:
            values = None
        if values == expected:
            console.print("[green]✓ Well done, on to the next one.[/]")
            return True
        console.print(f"[red]Not quite.[/] It is {exercise.prompt} = {a * b}")


# =============================================================================
# History and Preferences
# =============================================================================


@app.command()
def history(
    exercise: Annotated[
        str | None, typer.Option("--exercise", "-e", help="Exercise id such as 7x8")
    ] = None,
) -> None:
    """Show finished sessions, or every attempt at one exercise."""
    _, store = _open_store()
    try:
        if exercise is None:
            visuals.render_history(SessionSummaryStore(store).all_summaries())
            return
        a, b = parse_exercise_id(exercise)
        log = AttemptHistoryStore(store)
        item = Exercise.from_factors(a, b)
        visuals.render_exercise_history(item, log.attempts(item.exercise_id), log.best_time(item.exercise_id))
    except DrillError as exc:
        _fail(exc)


@config_app.command("show")
def config_show() -> None:
    """Show the current preferences and where they are stored."""
    settings, store = _open_store()
    preferences = Preferences(store, settings)
    location = {
        "json": str(settings.data_dir),
        "sqlite": settings.get_database_url(),
        "memory": "(in memory)",
    }[settings.store_backend]
    visuals.render_preferences(preferences.time_limit(), preferences.selected_tables(), settings.store_backend, location)


@config_app.command("set-time-limit")
def config_set_time_limit(
    seconds: Annotated[int, typer.Argument(help="Seconds per exercise")],
) -> None:
    """Change the time allowed per exercise."""
    settings, store = _open_store()
    try:
        Preferences(store, settings).set_time_limit(seconds)
    except DrillError as exc:
        _fail(exc)
    console.print(f"[green]✓[/] Time limit set to {seconds}s")


@config_app.command("set-tables")
def config_set_tables(
    tables: Annotated[str, typer.Argument(help="Comma-separated tables, e.g. 3,4,7")],
) -> None:
    """Change which tables are drilled by default."""
    settings, store = _open_store()
    try:
        selected = Preferences(store, settings).set_selected_tables(_parse_tables(tables))
    except DrillError as exc:
        _fail(exc)
    console.print(f"[green]✓[/] Tables set to {', '.join(str(t) for t in selected)}")


# =============================================================================
# Competition
# =============================================================================


@app.command()
def compete(
    players: Annotated[str, typer.Option("--players", "-p", help="Comma-separated player names (host first)")],
    count: Annotated[int, typer.Option("--count", "-n", help="Exercises per player")] = 10,
    tables: Annotated[
        str | None, typer.Option("--tables", help="Comma-separated tables, e.g. 3,4,7")
    ] = None,
) -> None:
    """Race several players through the same exercises, taking turns at this terminal."""
    names = [name.strip() for name in players.split(",") if name.strip()]
    if len(names) < 2:
        _fail(ValidationError("A race needs at least two players"))
    if count < 1:
        _fail(ValidationError("Each player needs at least one exercise"))
    try:
        selected = _parse_tables(tables) if tables else []
    except DrillError as exc:
        _fail(exc)

    service = CompetitionService(InMemoryRoomStore())
    try:
        room_id, host_id = service.create_room(names[0], RoomSettings(exercise_count=count, selected_tables=selected))
        player_ids = [host_id] + [service.join_room(room_id, name) for name in names[1:]]
        for player_id in player_ids:
            service.set_ready(room_id, player_id)
        service.start_countdown(room_id, host_id)
    except DrillError as exc:
        _fail(exc)

    console.print(f"[bold cyan]Room {room_id}[/]  [dim]{len(names)} players, {count} exercises each[/]")
    for remaining in range(COUNTDOWN_SECONDS, 0, -1):
        console.print(f"[bold]{remaining}…[/]")
        time.sleep(1)
    if not service.advance_countdown(room_id, host_id):
        service.start_game(room_id)

    try:
        for name, player_id in zip(names, player_ids):
            _play_turn(service, room_id, name, player_id)
    except (KeyboardInterrupt, EOFError):
        console.print("\n[yellow]Race abandoned.[/]")
        service.leave_room(room_id, host_id)
        raise typer.Exit(1) from None

    visuals.render_results(service.results(room_id))


def _play_turn(service: CompetitionService, room_id: str, name: str, player_id: str) -> None:
    console.print(f"\n[bold magenta]{name}'s turn[/]")
    while True:
        room = service.store.read(room_id)
        exercise = service.current_exercise(room, player_id)
        if exercise is None:
            return
        started = time.monotonic()
        raw = Prompt.ask(f"[bold]{exercise.num1} × {exercise.num2}[/] =", default="", show_default=False)
        try:
            answer = parse_answer(raw)
        except ValidationError as exc:
            console.print(f"[yellow]{exc.message}[/]")
            continue
        spent_ms = int((time.monotonic() - started) * 1000)
        if service.submit_answer(room_id, player_id, answer, spent_ms):
            console.print("[green]✓[/]")
        else:
            console.print(f"[red]✗ {exercise.correct_answer}[/]")


def run() -> None:
    """Entry point for the CLI."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)
    logger.debug("timestables {} starting", __version__)
    app()


if __name__ == "__main__":
    run()
