"""
speechsampler.analyze.energy - Chunk loudness analysis.

Turns a stream of fixed-size mono float chunks into per-chunk RMS energy
plus a running average over the last few chunks. Pure function of its
input stream; speech/silence decisions belong to the segmenter.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class EnergyFrame:
    """Loudness of one chunk, positioned on the source timeline."""

    index: int
    start: float
    end: float
    rms: float
    smoothed: float


def rms_energy(chunk: np.ndarray) -> float:
    """Root-mean-square amplitude of a chunk of samples in [-1, 1]."""
    if chunk.size == 0:
        return 0.0
    samples = chunk.astype(np.float64, copy=False)
    return float(np.sqrt(np.mean(samples**2)))


def analyze_energy(
    chunks: Iterable[np.ndarray],
    sample_rate: int,
    window: int = 5,
    start_time: float = 0.0,
) -> Iterator[EnergyFrame]:
    """Yield one EnergyFrame per non-empty chunk.

    Args:
        chunks: Mono float chunks normalized to [-1, 1]
        sample_rate: Sample rate of the chunks in Hz
        window: Number of most recent chunks averaged for ``smoothed``
        start_time: Timeline position of the first chunk in seconds

    Yields:
        EnergyFrame with raw and smoothed RMS energy
    """
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    if window < 1:
        raise ValueError("window must be at least 1")

    history: deque[float] = deque(maxlen=window)
    samples_seen = 0
    index = 0

    for chunk in chunks:
        samples = np.asarray(chunk)
        if samples.ndim > 1:
            samples = samples.mean(axis=1)
        if samples.size == 0:
            continue

        energy = rms_energy(samples)
        history.append(energy)
        smoothed = sum(history) / len(history)

        # Frame times are sample counts over the rate, never running float sums.
        chunk_start = start_time + samples_seen / sample_rate
        samples_seen += samples.size
        yield EnergyFrame(
            index=index,
            start=chunk_start,
            end=start_time + samples_seen / sample_rate,
            rms=energy,
            smoothed=smoothed,
        )
        index += 1


def chunk_signal(audio: np.ndarray, chunk_size: int) -> Iterator[np.ndarray]:
    """Split an in-memory signal into consecutive chunks of ``chunk_size``."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    for offset in range(0, len(audio), chunk_size):
        yield audio[offset : offset + chunk_size]
