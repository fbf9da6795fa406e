"""
speechsampler.cli - Typer CLI entry point.

A small developer harness around the sampler: sample files, preview clip
plans, and check which extraction backends are installed.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from speechsampler import __version__
from speechsampler.config import AudioConfig, SamplerConfig, SamplingProfile, load_config
from speechsampler.exceptions import ConfigError, DependencyError
from speechsampler.logging import configure_logging
from speechsampler.utils import format_duration, format_size

app = typer.Typer(
    name="speechsampler",
    help="Representative speech sampling for audio/video files.\n\n"
    "Extracts a bounded, speech-bearing audio sample from media using energy "
    "VAD, distributed clip sampling and an FFmpeg / built-in decoder cascade.",
    add_completion=False,
)
console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"speechsampler {__version__}")
        raise typer.Exit()


def resolve_profile(fast: bool, config_file: str | None) -> SamplingProfile:
    """Pick configuration from a YAML file or a built-in preset."""
    if config_file:
        return load_config(Path(config_file))
    if fast:
        return SamplingProfile(name="fast", sampler=SamplerConfig.fast(), audio=AudioConfig.fast())
    return SamplingProfile(name="default", sampler=SamplerConfig.default(), audio=AudioConfig.default())


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Speechsampler - speech sample extraction toolkit."""
    pass


@app.command("sample")
def sample_files(
    files: list[str] = typer.Argument(..., help="Audio/video file(s) to sample"),
    fast: bool = typer.Option(False, "--fast", help="Use the fast preset"),
    config_file: str | None = typer.Option(None, "--config", "-c", help="YAML config file"),
    out: str | None = typer.Option(None, "--out", "-o", help="Directory to keep sample WAVs in"),
    concurrency: int | None = typer.Option(None, "--concurrency", "-j", min=1, help="Files processed at once"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Extract speech samples from media files.

    Without --out, samples are reported and then deleted.
    """
    configure_logging(verbose)

    try:
        profile = resolve_profile(fast, config_file)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    missing = [f for f in files if not Path(f).exists()]
    if missing:
        for f in missing:
            console.print(f"[red]Error: File not found: {f}[/red]")
        raise typer.Exit(1)

    from speechsampler.batch import BatchSampler
    from speechsampler.sampler import SpeechSampler

    sampler = SpeechSampler(sampler_config=profile.sampler, audio_config=profile.audio)
    batch = BatchSampler(sampler, max_concurrent=concurrency)

    console.print(f"[cyan]Sampling {len(files)} file(s) with the '{profile.name}' profile...[/cyan]\n")
    items = batch.run(files)

    out_dir = Path(out) if out else None
    if out_dir:
        out_dir.mkdir(parents=True, exist_ok=True)

    table = Table(title="Speech Samples")
    table.add_column("File", style="cyan")
    table.add_column("Clip", style="dim")
    table.add_column("Speech", style="green")
    table.add_column("Scanned")
    table.add_column("Strategy")
    table.add_column("Retries")
    table.add_column("Output", style="yellow")

    try:
        for item in items:
            if not item.ok:
                table.add_row(item.source.name, "-", "-", "-", "-", "-", f"[red]skipped: {item.error.kind}[/red]")
                continue
            for result in item.results:
                clip_label = str(result.clip.index) if result.clip is not None else "all"
                output = format_size(result.artifact)
                if out_dir:
                    suffix = f"clip{result.clip.index}" if result.clip is not None else "speech"
                    dest = out_dir / f"{item.source.path.stem}_{suffix}.wav"
                    shutil.move(str(sampler.release(result)), dest)
                    output = str(dest)
                table.add_row(
                    item.source.name,
                    clip_label,
                    format_duration(result.speech_duration),
                    format_duration(result.total_scanned),
                    result.strategy,
                    str(result.retry_count),
                    output,
                )
    finally:
        sampler.cleanup()

    console.print(table)

    succeeded = sum(1 for item in items if item.ok)
    failed = len(items) - succeeded
    console.print(f"\n[green]✓[/green] Sampled {succeeded} file(s), skipped {failed}")

    if failed and not succeeded:
        raise typer.Exit(1)


@app.command("plan")
def plan_clips(
    duration: float = typer.Argument(..., help="Media duration in seconds"),
    fast: bool = typer.Option(False, "--fast", help="Use the fast preset"),
) -> None:
    """Show the clip positions that would be sampled for a duration."""
    from speechsampler.extract.planner import ClipPlanner

    config = AudioConfig.fast() if fast else AudioConfig.default()
    planner = ClipPlanner(config)
    clips = planner.plan(duration)

    if not clips:
        console.print(f"[yellow]No clips planned for {duration:.1f}s[/yellow]")
        raise typer.Exit(0)

    table = Table(title=f"Clip Plan ({format_duration(duration)})")
    table.add_column("#", style="dim")
    table.add_column("Start", style="cyan")
    table.add_column("End", style="cyan")
    table.add_column("Duration", style="green")
    table.add_column("Timeout")

    for clip in clips:
        table.add_row(
            str(clip.index),
            format_duration(clip.start_time),
            format_duration(clip.end_time),
            f"{clip.duration:.1f}s",
            f"{planner.timeout_for(clip):.0f}s",
        )

    console.print(table)
    total = sum(clip.duration for clip in clips)
    console.print(f"\n{len(clips)} clip(s), {total:.1f}s total (budget {config.max_total_audio_duration:.0f}s)")


@app.command("check")
def check_backends() -> None:
    """Check which extraction backends are available."""
    from speechsampler.extract.backends import BuiltinBackend, ExtractionCascade, FFmpegBackend

    ffmpeg = FFmpegBackend()
    availability = ffmpeg.check_availability()
    builtin = BuiltinBackend()

    table = Table(title="Extraction Backends")
    table.add_column("Backend", style="cyan")
    table.add_column("Status")
    table.add_column("Details", style="dim")

    table.add_row(
        "ffmpeg",
        "[green]available[/green]" if availability.ffmpeg_available else "[red]missing[/red]",
        availability.status_description,
    )
    table.add_row(
        "ffprobe",
        "[green]available[/green]" if availability.ffprobe_available else "[yellow]missing[/yellow]",
        availability.ffprobe_path or "duration probing falls back to librosa",
    )
    table.add_row(
        "builtin",
        "[green]available[/green]" if builtin.is_available() else "[red]missing[/red]",
        "librosa + soundfile",
    )
    console.print(table)

    try:
        ExtractionCascade([ffmpeg, builtin]).require_available()
    except DependencyError as e:
        console.print(f"[red]Error: No extraction backend is available. {e.message}[/red]")
        if e.install_hint:
            console.print(f"[dim]{e.install_hint}[/dim]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
