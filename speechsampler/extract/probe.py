"""
speechsampler.extract.probe - Container metadata probing.

Used when the caller did not supply a duration or container hint. ffprobe
is preferred; librosa's duration reader is the fallback when ffprobe is
not installed.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

from speechsampler.exceptions import (
    BackendUnavailableError,
    ExtractionFailedError,
    ExtractionTimeoutError,
    NoAudioTrackError,
)
from speechsampler.logging import get_logger
from speechsampler.models import MediaInfo

logger = get_logger("extract.probe")

PROBE_TIMEOUT = 30.0


def parse_probe_output(stdout: str) -> MediaInfo:
    """Build MediaInfo from ``ffprobe -print_format json`` output."""
    data = json.loads(stdout or "{}")
    audio_stream = None
    video_stream = None
    for stream in data.get("streams", []):
        if stream.get("codec_type") == "audio" and audio_stream is None:
            audio_stream = stream
        elif stream.get("codec_type") == "video" and video_stream is None:
            video_stream = stream

    format_info = data.get("format", {})

    duration = None
    raw_duration = format_info.get("duration") or (audio_stream or {}).get("duration")
    if raw_duration not in (None, "N/A"):
        try:
            duration = float(raw_duration)
        except (TypeError, ValueError):
            duration = None

    sample_rate = None
    channels = None
    if audio_stream:
        if audio_stream.get("sample_rate"):
            sample_rate = int(audio_stream["sample_rate"])
        if audio_stream.get("channels"):
            channels = int(audio_stream["channels"])

    return MediaInfo(
        duration=duration,
        container=format_info.get("format_name"),
        has_audio=audio_stream is not None,
        has_video=video_stream is not None,
        audio_codec=audio_stream.get("codec_name") if audio_stream else None,
        sample_rate=sample_rate,
        channels=channels,
    )


def probe_media(path: Path, ffprobe: str = "ffprobe", timeout: float = PROBE_TIMEOUT) -> MediaInfo:
    """Probe a media file for duration and stream layout using ffprobe.

    Raises:
        BackendUnavailableError: If ffprobe cannot be executed
        ExtractionTimeoutError: If ffprobe does not finish within ``timeout``
        ExtractionFailedError: If ffprobe exits with an error
        NoAudioTrackError: If the file has no audio stream
    """
    cmd = [
        ffprobe,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise BackendUnavailableError(f"ffprobe not found: {ffprobe}", strategy="ffprobe") from e
    except subprocess.TimeoutExpired as e:
        raise ExtractionTimeoutError(
            f"ffprobe timed out after {timeout:.0f}s for {path.name}", strategy="ffprobe"
        ) from e

    if proc.returncode != 0:
        raise ExtractionFailedError(
            f"ffprobe failed for {path.name}",
            diagnostic=proc.stderr,
            strategy="ffprobe",
        )

    try:
        info = parse_probe_output(proc.stdout)
    except json.JSONDecodeError as e:
        raise ExtractionFailedError(
            f"ffprobe returned unreadable output for {path.name}",
            diagnostic=str(e),
            strategy="ffprobe",
        ) from e

    if not info.has_audio:
        raise NoAudioTrackError(f"No audio track found in {path.name}", strategy="ffprobe")

    logger.debug("Probed %s: %.1fs, %s", path.name, info.duration or 0.0, info.container)
    return info


def probe_duration_builtin(path: Path) -> float | None:
    """Read a duration without ffprobe; None if the file cannot be decoded."""
    import librosa

    try:
        return float(librosa.get_duration(path=str(path)))
    except Exception as e:
        logger.debug("Built-in duration probe failed for %s: %s", path.name, e)
        return None
