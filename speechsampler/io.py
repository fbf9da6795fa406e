"""
speechsampler.io - PCM chunk reading and atomic WAV writing.

Centralized audio I/O for the VAD pipeline. Readers always yield mono
float32 samples in [-1, 1]; writers produce 16-bit PCM mono WAV files and
write through a temp file in the destination directory so an interrupted
write never leaves a truncated artifact behind.
"""

from __future__ import annotations

import tempfile
from collections.abc import Iterator, Sequence
from pathlib import Path

import numpy as np
import soundfile as sf

from speechsampler.models import TimeRange

PCM_SUBTYPE = "PCM_16"


def audio_sample_rate(path: Path) -> int:
    """Return the sample rate recorded in an audio file header."""
    return int(sf.info(str(path)).samplerate)


def audio_duration(path: Path) -> float:
    """Return the duration of a readable audio file in seconds."""
    info = sf.info(str(path))
    if info.samplerate <= 0:
        return 0.0
    return info.frames / info.samplerate


def iter_chunks(path: Path, chunk_size: int) -> Iterator[np.ndarray]:
    """Yield consecutive mono float32 chunks of ``chunk_size`` samples.

    Multi-channel files are down-mixed by averaging channels.
    """
    for block in sf.blocks(str(path), blocksize=chunk_size, dtype="float32", always_2d=True):
        yield block.mean(axis=1)


def read_mono(path: Path) -> tuple[np.ndarray, int]:
    """Read a whole file as mono float32."""
    audio, sr = sf.read(str(path), dtype="float32", always_2d=True)
    return audio.mean(axis=1), int(sr)


def write_wav(path: Path, audio: np.ndarray, sample_rate: int) -> None:
    """Write mono audio atomically as 16-bit PCM WAV.

    Args:
        path: Destination path
        audio: Mono float samples in [-1, 1]
        sample_rate: Sample rate in Hz
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    # Staging name starts with the destination stem, so temp-root orphans
    # share the temp manager prefix.
    with tempfile.NamedTemporaryFile(
        dir=path.parent,
        delete=False,
        prefix=f"{path.stem}.",
        suffix=".tmp.wav",
    ) as tmp:
        tmp_path = Path(tmp.name)
    try:
        sf.write(str(tmp_path), np.clip(audio, -1.0, 1.0), sample_rate, subtype=PCM_SUBTYPE, format="WAV")
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise
    tmp_path.replace(path)


def write_segments(
    source_path: Path,
    segments: Sequence[TimeRange],
    output_path: Path,
) -> float:
    """Concatenate the given ranges of ``source_path`` into ``output_path``.

    Returns:
        Duration in seconds of the audio actually written
    """
    audio, sr = read_mono(source_path)
    pieces = []
    for segment in segments:
        start = max(0, int(round(segment.start * sr)))
        end = min(len(audio), int(round(segment.end * sr)))
        if end > start:
            pieces.append(audio[start:end])

    joined = np.concatenate(pieces) if pieces else np.zeros(0, dtype=np.float32)
    write_wav(output_path, joined, sr)
    return len(joined) / sr if sr else 0.0
