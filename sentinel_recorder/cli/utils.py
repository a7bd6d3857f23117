"""CLI utilities for Sentinel Recorder.

This module provides common CLI utilities like Rich console output, tables,
the live level meter and event rendering.
"""

import os
import queue
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table
from rich.theme import Theme

from sentinel_recorder.core.events import (
    CaptureFailed,
    DetectionState,
    FirstSoundDetected,
    PermissionRequired,
    SessionEvent,
    StateChanged,
    StopTimedOut,
    WriteFailed,
)

# Create themed console for consistent output
_theme = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "bold red",
        "debug": "dim white",
    }
)

console = Console(theme=_theme)


def make_device_table(devices: List[dict]) -> Table:
    """Build a Rich Table from the device list returned by RecordingEngine.list_devices().

    Args:
        devices: List of dicts with keys: id, name, driver, channels, rate, is_default

    Returns:
        Configured Rich Table ready to print.
    """
    table = Table(show_header=True, header_style="bold", show_lines=False, expand=False)
    table.add_column("ID", style="cyan", width=4, justify="right")
    table.add_column("Name", min_width=30)
    table.add_column("Driver", style="dim", width=8)
    table.add_column("Ch", justify="right", style="dim", width=4)
    table.add_column("Rate", justify="right", style="dim", width=12)
    table.add_column("", width=9)

    for d in devices:
        default_mark = "[bold green]DEFAULT[/bold green]" if d.get("is_default") else ""
        table.add_row(
            str(d["id"]),
            d["name"],
            d.get("driver", "").upper(),
            str(d.get("channels", "")),
            f"{d.get('rate', '')} Hz",
            default_mark,
        )
    return table


def make_recordings_table(recordings: List[Dict[str, Any]]) -> Table:
    """Build a Rich Table from StorageManager.list_recordings()."""
    table = Table(show_header=True, header_style="bold", expand=False)
    table.add_column("Name", style="cyan", min_width=20)
    table.add_column("Size", justify="right")
    table.add_column("Duration", justify="right", style="dim")
    table.add_column("Created", style="dim")

    for r in recordings:
        table.add_row(
            r["name"],
            f"{r['size'] // 1024} KB",
            f"{r['duration_sec']:.1f}s",
            datetime.fromtimestamp(r["created"]).strftime("%Y-%m-%d %H:%M:%S"),
        )
    return table


def make_level_progress() -> Progress:
    """Create a Rich Progress instance repurposed as a real-time level meter.

    Usage::

        with make_level_progress() as progress:
            task = progress.add_task("level", total=120, db_text="-- dB", state_text="")
            while recording:
                progress.update(task, completed=db_level, db_text=f"{db_level:.1f} dB")
                time.sleep(0.1)

    Returns:
        Configured Rich Progress instance (0-120 dB scale).
    """
    return Progress(
        TextColumn("📈 Audio Level"),
        BarColumn(
            bar_width=50,
            complete_style="green",
            finished_style="green",
            pulse_style="yellow",
        ),
        TextColumn("[bold]{task.fields[db_text]}[/bold]"),
        TextColumn("{task.fields[state_text]}"),
        console=console,
        transient=False,
        expand=False,
    )


def state_label(state: DetectionState) -> str:
    """Rich markup for the meter's detection state column."""
    if state is DetectionState.ACTIVE:
        return "🔊 [bold green]SOUND[/bold green]"
    return "🔇 [dim]quiet[/dim]"


def describe_event(event: SessionEvent) -> Optional[str]:
    """Render a session event as one line of Rich markup.

    Returns ``None`` for events that are not printed (the summary is reported
    separately once the session ends).
    """
    if isinstance(event, StateChanged):
        if event.state is DetectionState.ACTIVE:
            return f"[success]🔊 Sound (loudness {event.loudness:.1f})[/success]"
        return f"[dim]🔇 Silence (loudness {event.loudness:.1f})[/dim]"
    if isinstance(event, FirstSoundDetected):
        return "[success]✓ Sound detected![/success]"
    if isinstance(event, PermissionRequired):
        return f"[warning]⚠ {event.reason}[/warning]"
    if isinstance(event, (WriteFailed, CaptureFailed, StopTimedOut)):
        return f"[error]✗ {event.reason}[/error]"
    return None


def drain(events: "queue.Queue") -> Iterator[Any]:
    """Yield everything currently queued without blocking."""
    while True:
        try:
            yield events.get_nowait()
        except queue.Empty:
            return


@contextmanager
def suppress_stderr():
    """Context manager to suppress stderr output from libraries like ALSA, JACK.

    Used to hide debug/warning messages from audio subsystems that pollute
    terminal output.
    """
    # Save original stderr file descriptor
    original_stderr_fd = os.dup(2)
    try:
        # Open /dev/null and redirect stderr to it
        null_fd = os.open(os.devnull, os.O_WRONLY)
        os.dup2(null_fd, 2)
        os.close(null_fd)
        yield
    finally:
        # Restore original stderr
        os.dup2(original_stderr_fd, 2)
        os.close(original_stderr_fd)


__all__ = [
    "console",
    "suppress_stderr",
    "make_device_table",
    "make_recordings_table",
    "make_level_progress",
    "state_label",
    "describe_event",
    "drain",
]
