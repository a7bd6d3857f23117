"""CLI commands for Sentinel Recorder.

This module provides all command-line interface commands using Typer.
"""

import queue
import sys
import time
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.panel import Panel
from rich.table import Table

from sentinel_recorder.core import (
    MicrophoneSource,
    RecorderError,
    RecordingController,
    RecordingEngine,
    RecordingSession,
    SessionSummary,
    SoundStateTracker,
    StateChanged,
    StorageManager,
    iter_chunks,
    loudness_to_db,
    measure,
    verify_recording,
)
from sentinel_recorder.core.config import (
    AppConfig, RATE, CHANNEL, STOP_TIMEOUT, OUTPUT_DIR, DATETIME_FORMAT,
    SAMPLE_WIDTH_INT16, MIN_BUFFER_FRAMES,
)
from sentinel_recorder.core.events import CaptureFailed, DetectionState, StopTimedOut, WriteFailed
from sentinel_recorder.core.log import RecordingLogger
from sentinel_recorder.cli.utils import (
    console, describe_event, drain, make_device_table, make_level_progress,
    make_recordings_table, state_label, suppress_stderr,
)

app = typer.Typer(help="Microphone recorder with live sound detection")

app_config = AppConfig()
default_output_dir = str(app_config.get("output_dir", OUTPUT_DIR))
default_rate = int(app_config.get("rate", RATE))
default_threshold = app_config.get_threshold()
default_stop_timeout = float(app_config.get("stop_timeout", STOP_TIMEOUT))


def _configure_logging(verbose: bool) -> None:
    """Configure loguru log level based on verbose flag."""
    logger.remove()
    if verbose:
        logger.add(sys.stderr, level="DEBUG")
    else:
        logger.add(sys.stderr, level="WARNING")


@app.command()
def list_devices(
    driver: Optional[str] = typer.Option(
        None, help="Filter by driver type: pulse, alsa, jack, usb, default"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show debug output from audio libraries"
    ),
):
    """List all available input audio devices."""
    _configure_logging(verbose)
    try:
        if verbose:
            devices = RecordingEngine.list_devices(driver_filter=driver)
        else:
            with suppress_stderr():
                devices = RecordingEngine.list_devices(driver_filter=driver)
    except OSError as e:
        console.print(f"[error]✗ Error listing devices: {e}[/error]")
        raise typer.Exit(1)

    title = "Available Input Devices"
    if driver:
        title += f" (filtered by: {driver})"
    console.print(Panel(make_device_table(devices), title=f"[bold]{title}[/bold]"))


@app.command()
def record(
    output: Optional[str] = typer.Option(
        None, help="Raw PCM output file. Defaults to output_dir/output_file from the config."
    ),
    duration: Optional[float] = typer.Option(
        None, help="Recording duration in seconds. Leave empty for continuous recording."
    ),
    device_id: Optional[int] = typer.Option(
        app_config.get("device_id"), help="Audio device ID to use. Leave empty for the system default."
    ),
    threshold: float = typer.Option(
        default_threshold, help="RMS level above which a chunk counts as sound"
    ),
    chunk: Optional[int] = typer.Option(
        app_config.get("chunk"), help="Frames per read. Leave empty for the device minimum."
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Grant microphone access without prompting"
    ),
    log_file: Optional[str] = typer.Option(
        None,
        help=(
            "Override the session log filename (relative to the output file's directory). "
            "Defaults to the value from .sentinel-recorder.yml or 'sessions.jsonl'."
        ),
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show debug output from audio libraries"
    ),
):
    """Record raw PCM audio and report when sound is detected."""
    _configure_logging(verbose)

    output_path = Path(output) if output else app_config.get_output_path()
    log_path = output_path.parent / log_file if log_file else app_config.get_log_path(output_path.parent)
    recording_logger = RecordingLogger(log_path)
    console.print(f'[dim]📝 Session log: {log_path}[/dim]')

    # Everything the capture thread reports goes through this queue; the
    # main thread is the only one touching the console.
    events: "queue.Queue" = queue.Queue()
    session = RecordingSession(
        source_factory=lambda: MicrophoneSource(device_id=device_id, frames_per_buffer=chunk),
        level_callback=events.put,
        threshold=threshold,
        rate=default_rate,
        channels=CHANNEL,
        stop_timeout=default_stop_timeout,
        recording_logger=recording_logger,
        datetime_format=str(app_config.get("datetime_format", DATETIME_FORMAT)),
    )
    controller = RecordingController(session, listener=events.put)

    granted = yes or typer.confirm("🎙 Allow microphone access?", default=True)
    controller.permission_granted(granted)

    try:
        if verbose:
            started = controller.request_start(output_path)
        else:
            with suppress_stderr():
                started = controller.request_start(output_path)
    except RecorderError as e:
        console.print(f"[error]✗ {e}[/error]")
        raise typer.Exit(1)

    if not started:
        for item in drain(events):
            line = describe_event(item) if not isinstance(item, float) else None
            if line:
                console.print(line)
        raise typer.Exit(1)

    info_grid = Table.grid(padding=(0, 1))
    info_grid.add_column(style="dim", justify="right")
    info_grid.add_column()
    info_grid.add_row("Output:", str(output_path))
    info_grid.add_row("Device:", "system default" if device_id is None else str(device_id))
    info_grid.add_row("Sample Rate:", f"{default_rate} Hz (mono, 16-bit PCM)")
    info_grid.add_row("Threshold:", f"{threshold:.1f} RMS")
    info_grid.add_row("Duration:", f"{duration}s" if duration else "continuous (Ctrl+C to stop)")
    info_grid.add_row("Log:", str(log_path))
    console.print(Panel(info_grid, title="[bold]🎙 Recording Session[/bold]", border_style="green"))

    summary = SessionSummary.empty()
    failed = False

    def handle(item, progress, task) -> None:
        nonlocal summary, failed
        if isinstance(item, float):
            db_level = loudness_to_db(item)
            progress.update(task, completed=db_level, db_text=f"{db_level:.1f} dB")
            return
        if isinstance(item, SessionSummary):
            summary = item
            return
        if isinstance(item, StateChanged):
            progress.update(task, state_text=state_label(item.state))
        if isinstance(item, (WriteFailed, CaptureFailed, StopTimedOut)):
            failed = True
        line = describe_event(item)
        if line:
            progress.console.print(line)

    with make_level_progress() as progress:
        task = progress.add_task(
            "level", total=120, db_text="-- dB", state_text=state_label(DetectionState.QUIET)
        )
        start_time = time.time()
        try:
            while controller.is_recording:
                if duration and time.time() - start_time >= duration:
                    break
                for item in drain(events):
                    handle(item, progress, task)
                time.sleep(0.1)
        except KeyboardInterrupt:
            progress.console.print("[warning]⏹ Recording interrupted by user[/warning]")
        finally:
            controller.request_stop()
            for item in drain(events):
                handle(item, progress, task)

    for line in verify_recording(summary):
        style = "success" if line.startswith("Recording saved") else "warning"
        console.print(f"[{style}]{line}[/{style}]")

    if failed:
        raise typer.Exit(1)
    console.print("[success]✓ Recording completed[/success]")


@app.command()
def analyze(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Raw PCM recording to analyze"),
    chunk_frames: Optional[int] = typer.Option(
        None,
        help=(
            "Frames per analysis chunk. Defaults to the buffer size recorded in the "
            f"session log for this file, else {MIN_BUFFER_FRAMES}."
        ),
    ),
    threshold: float = typer.Option(default_threshold, help="RMS level above which a chunk counts as sound"),
    rate: int = typer.Option(default_rate, help="Sample rate of the recording in Hz"),
):
    """Re-measure a recording and list where sound starts and stops."""
    if chunk_frames is None:
        start_record = RecordingLogger(app_config.get_log_path(path.parent)).find_session_start(path)
        logged_frames = start_record.get("buffer_frames") if start_record else None
        chunk_frames = int(logged_frames) if logged_frames else MIN_BUFFER_FRAMES
        logger.debug(f'Analysis chunk size: {chunk_frames} frames')
    tracker = SoundStateTracker(threshold)

    transitions = Table(show_header=True, header_style="bold", expand=False)
    transitions.add_column("Time", justify="right", style="cyan")
    transitions.add_column("State")
    transitions.add_column("Loudness", justify="right", style="dim")

    chunk_count = 0
    peak = 0.0
    for index, chunk_data in enumerate(iter_chunks(path, chunk_frames * SAMPLE_WIDTH_INT16)):
        loudness = measure(chunk_data)
        chunk_count += 1
        peak = max(peak, loudness)
        for event in tracker.update(loudness):
            if isinstance(event, StateChanged):
                transitions.add_row(
                    f"{index * chunk_frames / rate:.2f}s",
                    state_label(event.state),
                    f"{event.loudness:.1f}",
                )

    if chunk_count == 0:
        console.print(f"[error]✗ Recording is empty: {path}[/error]")
        raise typer.Exit(1)

    info_grid = Table.grid(padding=(0, 1))
    info_grid.add_column(style="dim", justify="right")
    info_grid.add_column()
    info_grid.add_row("Chunks:", str(chunk_count))
    info_grid.add_row("Duration:", f"{path.stat().st_size / (SAMPLE_WIDTH_INT16 * rate):.2f}s")
    info_grid.add_row("Peak loudness:", f"{peak:.1f} RMS ({loudness_to_db(peak):.1f} dB)")
    info_grid.add_row("Threshold:", f"{threshold:.1f} RMS")
    info_grid.add_row("Sound detected:", "yes" if tracker.ever_detected else "no")

    console.print(Panel(info_grid, title=f"[bold]📊 {path.name}[/bold]"))
    if tracker.ever_detected:
        console.print(Panel(transitions, title="[bold]Transitions[/bold]"))
    else:
        console.print("[warning]No significant sound detected during recording[/warning]")


@app.command()
def recordings(
    output_dir: str = typer.Option(default_output_dir, help="Directory holding recordings"),
):
    """List stored raw PCM recordings."""
    storage = StorageManager(output_dir, sample_rate=default_rate)
    items = storage.list_recordings()
    if not items:
        console.print(f"[dim]No recordings in {output_dir}[/dim]")
        return
    console.print(Panel(make_recordings_table(items), title=f"[bold]Recordings in {output_dir}[/bold]"))
