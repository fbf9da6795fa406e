"""
Test configuration and shared fixtures.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import numpy as np
import pytest
import soundfile as sf

from speechsampler.extract.backends import AudioBackend
from speechsampler.extract.tempfiles import TempFileManager
from speechsampler.io import read_mono, write_wav
from speechsampler.models import ClipPosition, SourceMedia

SAMPLE_RATE = 16000

# (seconds, is_speech); 24s total, three bursts of speech
SPEECH_PATTERN = [
    (1.0, False),
    (4.0, True),
    (3.0, False),
    (5.0, True),
    (3.0, False),
    (5.0, True),
    (3.0, False),
]


def make_signal(
    pattern: list[tuple[float, bool]],
    sample_rate: int = SAMPLE_RATE,
    amplitude: float = 0.3,
) -> np.ndarray:
    """Build a mono signal of tone bursts (speech) and low noise (silence)."""
    rng = np.random.default_rng(1234)
    pieces = []
    for seconds, is_speech in pattern:
        n = int(seconds * sample_rate)
        if is_speech:
            t = np.arange(n) / sample_rate
            envelope = 0.75 + 0.25 * np.sin(2 * np.pi * 3.0 * t)
            pieces.append(amplitude * envelope * np.sin(2 * np.pi * 220.0 * t))
        else:
            pieces.append(rng.normal(0.0, 0.001, n))
    return np.concatenate(pieces).astype(np.float32)


def write_signal(path: Path, pattern: list[tuple[float, bool]], sample_rate: int = SAMPLE_RATE) -> Path:
    sf.write(str(path), make_signal(pattern, sample_rate), sample_rate, subtype="PCM_16")
    return path


@pytest.fixture
def speech_wav(tmp_path: Path) -> Path:
    """24 seconds of audio with three speech bursts."""
    return write_signal(tmp_path / "interview.wav", SPEECH_PATTERN)


@pytest.fixture
def silent_wav(tmp_path: Path) -> Path:
    """24 seconds of low-level noise with no speech."""
    return write_signal(tmp_path / "silence.wav", [(24.0, False)])


@pytest.fixture
def temp_manager(tmp_path: Path) -> TempFileManager:
    return TempFileManager(root=tmp_path / "temp")


class SyntheticBackend(AudioBackend):
    """In-process backend that slices a WAV source, with scripted failures.

    ``script`` holds exceptions raised by successive calls before the
    backend starts succeeding. ``fail_when`` can fail specific clips.
    """

    def __init__(
        self,
        name: str = "synthetic",
        script: list[BaseException] | None = None,
        available: bool = True,
        full_featured: bool = False,
        supports_separation: bool = False,
        fail_when: Callable[[ClipPosition | None], BaseException | None] | None = None,
        delay_for: Callable[[ClipPosition | None], float] | None = None,
        write_partial: bool = False,
    ) -> None:
        super().__init__(sample_rate=SAMPLE_RATE, timeout=30.0)
        self.name = name
        self.script = list(script or [])
        self.available = available
        self.full_featured = full_featured
        self.supports_separation = supports_separation
        self.fail_when = fail_when
        self.delay_for = delay_for
        self.write_partial = write_partial
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        return self.available

    def extract(
        self,
        source: SourceMedia,
        output_path: Path,
        clip: ClipPosition | None = None,
        max_duration: float | None = None,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
        apply_separation: bool = False,
    ) -> Path:
        with self._lock:
            self.calls.append(
                {
                    "clip": clip,
                    "output_path": output_path,
                    "max_duration": max_duration,
                    "timeout": timeout,
                    "apply_separation": apply_separation,
                }
            )
            step = self.script.pop(0) if self.script else None

        if self.delay_for is not None:
            time.sleep(self.delay_for(clip))

        error = step or (self.fail_when(clip) if self.fail_when else None)
        if error is not None:
            if self.write_partial:
                output_path.write_bytes(b"partial")
            raise error

        audio, sr = read_mono(source.path)
        start = int(clip.start_time * sr) if clip else 0
        if clip is not None:
            end = int(clip.end_time * sr)
        elif max_duration is not None:
            end = int(max_duration * sr)
        else:
            end = len(audio)
        write_wav(output_path, audio[start:end], sr)
        return output_path


class WaitRecorder:
    """Backoff waiter that records delays instead of sleeping."""

    def __init__(self, cancel: bool = False) -> None:
        self.delays: list[float] = []
        self.cancel = cancel

    def __call__(self, delay: float, cancel_event: threading.Event | None = None) -> bool:
        self.delays.append(delay)
        return self.cancel


@pytest.fixture
def wait_recorder() -> WaitRecorder:
    return WaitRecorder()


@pytest.fixture
def make_backend() -> type[SyntheticBackend]:
    return SyntheticBackend


@pytest.fixture
def signal_writer() -> Callable[..., Path]:
    return write_signal
