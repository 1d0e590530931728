"""coachcoo command-line interface module.

This module exposes the Typer-based ``coachcoo`` command that runs a routine
in the terminal and validates or lists routine packs.

Tests: tests/test_cli.py
Related Modules:
- coachcoo.logger - logging utilities
- coachcoo.config - runner defaults
- engine.orchestration.routine_runner - the routine runner

Dependencies:
- External libraries: typer, PyYAML, pydantic, python-dotenv
- Internal modules: engine.* packages
"""
from __future__ import annotations

import asyncio
import random
import sys
import threading
import uuid
from pathlib import Path
from typing import Optional

import typer

from coachcoo.config import load_config
from coachcoo.logger import get_logger
from engine.core.models import Routine
from engine.orchestration.routine_registry import (
    RoutineLoadError,
    RoutineRegistry,
    load_routine_file,
)
from engine.orchestration.routine_runner import (
    TERMINAL_STATUSES,
    RoutineRunner,
    RunnerDependencies,
    RunnerOptions,
    RunnerSnapshot,
    RunnerStatus,
)
from engine.persistence import InMemoryEventLogger, SQLiteEventLogger
from engine.routines.personalization import ChildProfile
from engine.speech_backends.registry import get_backend_registry

app = typer.Typer(help="Guide a child through a spoken routine.")
logger = get_logger(__name__)


def _cprint(text: str, color: str = "") -> None:
    """Print ``text`` using basic ANSI colors."""
    colors = {
        "red": "31",
        "green": "32",
        "yellow": "33",
        "blue": "34",
    }
    code = colors.get(color)
    if code:
        print(f"\033[{code}m{text}\033[0m")
    else:
        print(text)


def _resolve_routine(routine: str, routines_dir: Path) -> Routine:
    path = Path(routine)
    if path.suffix in (".yml", ".yaml", ".json") or path.exists():
        return load_routine_file(path)
    found = RoutineRegistry(routines_dir).get_routine(routine)
    if found is None:
        raise RoutineLoadError(routines_dir / routine, [f"(root) unknown routine '{routine}'"])
    return found


def _check_backend_kind(name: str, kind: str) -> None:
    """Raise ``ValueError`` when ``name`` is registered for the other direction."""
    info = get_backend_registry().get_backend_info(name)
    if info is not None and info.kind != kind:
        raise ValueError(f"Backend '{name}' is a speech {info.kind} backend, not speech {kind}")


def _print_snapshot(previous: dict, snap: RunnerSnapshot) -> None:
    """Echo the interesting parts of a runner snapshot change."""
    if snap.celebrate_tts and snap.celebrate_tts != previous.get("celebrate_tts"):
        _cprint(f"  * {snap.celebrate_tts}", "green")
    if snap.reward_points and snap.reward_points != previous.get("reward_points"):
        _cprint(f"  + {snap.reward_points} point(s)", "green")
    if snap.reward_sticker and snap.reward_sticker != previous.get("reward_sticker"):
        _cprint(f"  + sticker: {snap.reward_sticker}", "green")
    if snap.status != previous.get("status"):
        if snap.status is RunnerStatus.WAITING_CONFIRM:
            _cprint("  [Enter] done  [t] skip  [q] quit", "yellow")
        elif snap.status is RunnerStatus.ERROR:
            _cprint(f"Error: {snap.error_message}", "red")
    previous.update(
        status=snap.status,
        celebrate_tts=snap.celebrate_tts,
        reward_points=snap.reward_points,
        reward_sticker=snap.reward_sticker,
    )


async def _drive(runner: RoutineRunner, allow_eof_abort: bool) -> RunnerSnapshot:
    """Run ``runner`` while feeding it commands typed on stdin."""
    loop = asyncio.get_running_loop()
    commands: asyncio.Queue[Optional[str]] = asyncio.Queue()
    finished = asyncio.Event()

    def _reader() -> None:
        try:
            for line in sys.stdin:
                loop.call_soon_threadsafe(commands.put_nowait, line.strip().lower())
            loop.call_soon_threadsafe(commands.put_nowait, None)
        except RuntimeError:
            # event loop already closed; the session is over
            return

    threading.Thread(target=_reader, daemon=True).start()

    previous: dict = {}

    def _on_change(snap: RunnerSnapshot) -> None:
        _print_snapshot(previous, snap)
        if snap.status in TERMINAL_STATUSES:
            finished.set()

    runner.subscribe(_on_change)
    await runner.start()

    while not finished.is_set():
        get_cmd = asyncio.ensure_future(commands.get())
        wait_done = asyncio.ensure_future(finished.wait())
        done, _ = await asyncio.wait({get_cmd, wait_done}, return_when=asyncio.FIRST_COMPLETED)
        if get_cmd not in done:
            get_cmd.cancel()
            break
        wait_done.cancel()
        cmd = get_cmd.result()
        if cmd is None:
            if allow_eof_abort:
                await runner.abort("stdin_closed")
            continue
        if cmd in ("q", "quit"):
            await runner.abort("user_quit")
        elif cmd in ("t", "skip"):
            await runner.timeout_current_step("manual")
        else:
            await runner.confirm_current_step("manual")

    await runner.dispose()
    return runner.snapshot


@app.command(name="run")
def run_routine(
    routine: str = typer.Argument(..., help="Routine id or path to a routine file"),
    routines_dir: Path = typer.Option(Path("routines"), "--dir", help="Routine pack directory"),
    child_name: str = typer.Option("friend", "--child-name", help="Name used in prompts"),
    auto_confirm_ms: Optional[int] = typer.Option(None, "--auto-confirm-ms", help="Auto-confirm delay, 0 disables"),
    listen_timeout_ms: Optional[int] = typer.Option(None, "--listen-timeout-ms", help="Listen window override"),
    stub_listener: bool = typer.Option(False, "--stub-listener", help="Never listen; always wait for confirmation"),
    speech_input: str = typer.Option("", "--speech-input", help="Speech input backend name (e.g. stub)"),
    speech_output: str = typer.Option("console", "--speech-output", help="Speech output backend name"),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite file for the session event log"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for prompt variant selection"),
) -> None:
    """Run a routine in the terminal."""
    try:
        definition = _resolve_routine(routine, routines_dir)
    except RoutineLoadError as exc:
        for err in exc.errors:
            _cprint(err, "red")
        raise typer.Exit(1)

    config = load_config()
    registry = get_backend_registry()
    try:
        _check_backend_kind(speech_output, "output")
        output = registry.create(speech_output)
        recognizer = None
        if speech_input:
            _check_backend_kind(speech_input, "input")
            recognizer = registry.create(speech_input)
    except (ImportError, ValueError) as exc:
        _cprint(str(exc), "red")
        raise typer.Exit(1)

    session_id = uuid.uuid4().hex
    event_logger = SQLiteEventLogger(db) if db else InMemoryEventLogger()
    options = RunnerOptions(
        session_id=session_id,
        routine=definition,
        child=ChildProfile(id="cli", display_name=child_name, name=child_name, nickname=child_name),
        listen_timeout_ms=listen_timeout_ms,
        auto_confirm_ms=auto_confirm_ms,
        use_stub_listener=True if stub_listener else None,
    )
    deps = RunnerDependencies(
        speech_output=output,
        event_logger=event_logger,
        speech_input=recognizer,
        rng=random.Random(seed) if seed is not None else None,
    )
    runner = RoutineRunner(options, deps, config)
    effective_auto_confirm = auto_confirm_ms if auto_confirm_ms is not None else config.auto_confirm_ms

    async def _session() -> RunnerSnapshot:
        if isinstance(event_logger, SQLiteEventLogger):
            await event_logger.start_session(session_id, definition.id, options.child.id)
        snap = await _drive(runner, allow_eof_abort=effective_auto_confirm <= 0)
        if isinstance(event_logger, SQLiteEventLogger):
            await event_logger.end_session(session_id, snap.engagement)
        return snap

    _cprint(f"Starting '{definition.title}' ({len(definition.steps)} steps)", "blue")
    final = asyncio.run(_session())
    color = "green" if final.status is RunnerStatus.COMPLETED else "yellow"
    _cprint(f"Routine {final.status.value}: engagement {final.engagement:.2f}", color)
    if final.status is RunnerStatus.ERROR:
        raise typer.Exit(1)


@app.command()
def validate(path: Path = typer.Argument(..., help="Routine file to validate")) -> None:
    """Validate a routine file and print any errors."""
    try:
        routine = load_routine_file(path)
    except RoutineLoadError as exc:
        for err in exc.errors:
            _cprint(err, "red")
        raise typer.Exit(1)
    _cprint(f"OK {routine.id} ({len(routine.steps)} steps)", "green")


@app.command(name="list")
def list_routines(
    routines_dir: Path = typer.Option(Path("routines"), "--dir", help="Routine pack directory"),
) -> None:
    """List the routines available in a directory."""
    registry = RoutineRegistry(routines_dir)
    ids = registry.list_routine_ids()
    if not ids and not registry.failures:
        _cprint(f"No routines found in {routines_dir}", "yellow")
        return
    for routine_id in ids:
        routine = registry.get_routine(routine_id)
        print(f"{routine_id}\t{routine.title}\t{len(routine.steps)} steps")
    for name, errors in registry.failures.items():
        _cprint(f"{name}: invalid ({len(errors)} error(s))", "yellow")


def run() -> None:
    """Main CLI entry point using Typer."""
    app()


if __name__ == "__main__":
    run()
