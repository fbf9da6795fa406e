"""
speechsampler.extract.backends - Interchangeable audio extraction backends.

Each backend turns a source file (or a time sub-range of it) into a
normalized artifact: mono, 16-bit PCM WAV at the configured sample rate.

- FFmpegBackend: the full-featured external command-line tool
- BuiltinBackend: librosa decoding in an isolated child process

Both enforce their own per-attempt timeout by running the work out of
process and killing it at the deadline.
"""

from __future__ import annotations

import importlib.util
import os
import shutil
import threading
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from speechsampler.config import AudioConfig
from speechsampler.exceptions import (
    BackendUnavailableError,
    DependencyError,
    ExtractionCancelledError,
    ExtractionFailedError,
    ExtractionTimeoutError,
    OutputMissingError,
)
from speechsampler.extract.process import ProcessOutcome, run_callable, run_command
from speechsampler.logging import get_logger
from speechsampler.models import ClipPosition, SourceMedia

logger = get_logger("extract.backends")

WAV_HEADER_BYTES = 44

# Containers the built-in decoder handles poorly; the external tool goes first.
FFMPEG_PREFERRED_FORMATS = frozenset({"mkv", "avi", "wmv", "flv", "webm"})

FFMPEG_SEARCH_PATHS = (
    "/opt/homebrew/bin/ffmpeg",
    "/usr/local/bin/ffmpeg",
    "/usr/bin/ffmpeg",
)

# Noise reduction plus a speech-band filter for clips that came back silent.
SEPARATION_FILTER = "afftdn=nf=-25,highpass=f=80,lowpass=f=3000"

INSTALL_HINT = "Install ffmpeg (brew install ffmpeg / apt install ffmpeg) or pip install librosa soundfile"


class AudioBackend(ABC):
    """Interface shared by every extraction strategy."""

    name: str = "backend"
    full_featured: bool = False
    supported_formats: frozenset[str] = frozenset()
    supports_separation: bool = False

    def __init__(self, sample_rate: int = 16000, timeout: float = 120.0) -> None:
        self.sample_rate = sample_rate
        self.timeout = timeout

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the backend can run at all on this system."""

    @abstractmethod
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
        """Write the normalized audio for ``source`` (or ``clip``) to ``output_path``.

        Raises:
            BackendUnavailableError, ExtractionTimeoutError,
            ExtractionFailedError, OutputMissingError,
            ExtractionCancelledError
        """

    def prefers(self, extension: str) -> bool:
        return extension in self.supported_formats

    def _check_outcome(self, outcome: ProcessOutcome, source: SourceMedia, output_path: Path) -> Path:
        """Translate a finished child process into an artifact or a failure."""
        if outcome.cancelled:
            raise ExtractionCancelledError(
                f"{self.name} extraction cancelled for {source.name}",
                strategy=self.name,
            )
        if outcome.timed_out:
            raise ExtractionTimeoutError(
                f"Audio extraction timed out after {outcome.elapsed:.2f}s for {source.name}",
                diagnostic=outcome.diagnostic,
                strategy=self.name,
            )
        if outcome.returncode != 0:
            logger.warning(
                "%s extraction failed (code %s) for %s: %s",
                self.name,
                outcome.returncode,
                source.name,
                outcome.diagnostic or "no diagnostic output",
            )
            raise ExtractionFailedError(
                f"Audio extraction failed for {source.name}",
                diagnostic=outcome.diagnostic or "Unknown error",
                strategy=self.name,
            )
        if not output_path.exists():
            raise OutputMissingError(
                f"Output file was not created for {source.name}",
                diagnostic=outcome.diagnostic,
                strategy=self.name,
            )
        if output_path.stat().st_size <= WAV_HEADER_BYTES:
            raise OutputMissingError(
                f"Output file is empty for {source.name}",
                diagnostic=outcome.diagnostic,
                strategy=self.name,
            )

        logger.info("%s extracted %s in %.2fs", self.name, source.name, outcome.elapsed)
        return output_path


@dataclass(frozen=True)
class FFmpegAvailability:
    ffmpeg_path: str | None
    ffprobe_path: str | None

    @property
    def ffmpeg_available(self) -> bool:
        return self.ffmpeg_path is not None

    @property
    def ffprobe_available(self) -> bool:
        return self.ffprobe_path is not None

    @property
    def is_fully_available(self) -> bool:
        return self.ffmpeg_available and self.ffprobe_available

    @property
    def status_description(self) -> str:
        if self.is_fully_available:
            return f"FFmpeg available at {self.ffmpeg_path}"
        if self.ffmpeg_available:
            return "FFmpeg available, ffprobe missing"
        return "FFmpeg not installed (https://ffmpeg.org/download.html)"


class FFmpegBackend(AudioBackend):
    """Extraction via the ffmpeg command-line tool."""

    name = "ffmpeg"
    full_featured = True
    supports_separation = True
    supported_formats = frozenset(
        {
            "mp4", "mov", "avi", "mkv", "wmv", "flv", "webm", "m4v",
            "mp3", "m4a", "wav", "aac", "flac", "ogg", "wma", "aiff",
        }
    )

    def __init__(
        self,
        sample_rate: int = 16000,
        timeout: float = 120.0,
        ffmpeg_path: str | None = None,
        codec: str = "pcm_s16le",
        search_paths: Sequence[str] = FFMPEG_SEARCH_PATHS,
    ) -> None:
        super().__init__(sample_rate=sample_rate, timeout=timeout)
        self.configured_path = ffmpeg_path
        self.codec = codec
        self.search_paths = tuple(search_paths)
        self._lock = threading.Lock()
        self._detected_path: str | None = None
        self._checked = False

    @classmethod
    def from_config(cls, config: AudioConfig, sample_rate: int) -> FFmpegBackend:
        return cls(sample_rate=sample_rate, timeout=config.extraction_timeout, ffmpeg_path=config.ffmpeg_path)

    def find_ffmpeg(self) -> str | None:
        """Locate ffmpeg once; the result is cached for the backend's lifetime."""
        with self._lock:
            if self._checked:
                return self._detected_path
            self._detected_path = self._detect()
            self._checked = True
        if self._detected_path:
            logger.debug("Found ffmpeg at %s", self._detected_path)
        else:
            logger.warning("ffmpeg not found on system")
        return self._detected_path

    def _detect(self) -> str | None:
        if self.configured_path and os.path.isfile(self.configured_path):
            return self.configured_path
        for path in self.search_paths:
            if os.path.isfile(path) and os.access(path, os.X_OK):
                return path
        return shutil.which("ffmpeg")

    def find_ffprobe(self) -> str | None:
        ffmpeg = self.find_ffmpeg()
        if ffmpeg is None:
            return shutil.which("ffprobe")
        directory, binary = os.path.split(ffmpeg)
        candidate = os.path.join(directory, binary.replace("ffmpeg", "ffprobe"))
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
        return shutil.which("ffprobe")

    def check_availability(self) -> FFmpegAvailability:
        return FFmpegAvailability(ffmpeg_path=self.find_ffmpeg(), ffprobe_path=self.find_ffprobe())

    def is_available(self) -> bool:
        return self.find_ffmpeg() is not None

    def build_command(
        self,
        ffmpeg: str,
        source: SourceMedia,
        output_path: Path,
        clip: ClipPosition | None = None,
        max_duration: float | None = None,
        apply_separation: bool = False,
    ) -> list[str]:
        cmd = [ffmpeg, "-hide_banner", "-nostdin", "-loglevel", "error"]

        if clip is not None:
            cmd += ["-ss", f"{clip.start_time:.3f}", "-i", str(source.path), "-t", f"{clip.duration:.3f}"]
        else:
            cmd += ["-i", str(source.path)]
            if max_duration is not None:
                cmd += ["-t", f"{max_duration:.3f}"]

        cmd.append("-vn")
        if apply_separation:
            cmd += ["-af", SEPARATION_FILTER]

        cmd += [
            "-acodec",
            self.codec,
            "-ar",
            str(self.sample_rate),
            "-ac",
            "1",
            "-y",
            str(output_path),
        ]
        return cmd

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
        ffmpeg = self.find_ffmpeg()
        if ffmpeg is None:
            raise BackendUnavailableError("FFmpeg not found", strategy=self.name)

        effective_timeout = timeout or self.timeout
        cmd = self.build_command(ffmpeg, source, output_path, clip, max_duration, apply_separation)
        if clip is not None:
            logger.debug(
                "ffmpeg clip %d of %s at %.1fs for %.1fs (timeout %.0fs, separation %s)",
                clip.index,
                source.name,
                clip.start_time,
                clip.duration,
                effective_timeout,
                apply_separation,
            )
        else:
            logger.debug("ffmpeg extracting %s (timeout %.0fs)", source.name, effective_timeout)

        try:
            outcome = run_command(cmd, timeout=effective_timeout, cancel_event=cancel_event)
        except FileNotFoundError as e:
            raise BackendUnavailableError(f"FFmpeg not executable: {ffmpeg}", strategy=self.name) from e
        except OSError as e:
            raise ExtractionFailedError(
                f"Could not start ffmpeg for {source.name}",
                diagnostic=str(e),
                strategy=self.name,
            ) from e

        return self._check_outcome(outcome, source, output_path)


def decode_to_wav(
    source_path: str,
    output_path: str,
    sample_rate: int,
    offset: float = 0.0,
    duration: float | None = None,
) -> None:
    """Decode, down-mix and resample with librosa, then write 16-bit PCM.

    Runs inside the built-in backend's child process.
    """
    import librosa

    from speechsampler.io import write_wav

    audio, _ = librosa.load(source_path, sr=sample_rate, mono=True, offset=offset, duration=duration)
    if audio.size == 0:
        raise ValueError("no audio samples decoded")
    write_wav(Path(output_path), audio, sample_rate)


class BuiltinBackend(AudioBackend):
    """Fallback decoder using librosa (soundfile / audioread) in a child process."""

    name = "builtin"
    supported_formats = frozenset({"wav", "flac", "ogg", "mp3", "aiff", "m4a", "aac", "mp4", "mov", "m4v"})

    def __init__(self, sample_rate: int = 16000, timeout: float = 120.0) -> None:
        super().__init__(sample_rate=sample_rate, timeout=timeout)
        self._lock = threading.Lock()
        self._available: bool | None = None

    @classmethod
    def from_config(cls, config: AudioConfig, sample_rate: int) -> BuiltinBackend:
        return cls(sample_rate=sample_rate, timeout=config.extraction_timeout)

    def is_available(self) -> bool:
        with self._lock:
            if self._available is None:
                self._available = all(
                    importlib.util.find_spec(module) is not None for module in ("librosa", "soundfile")
                )
            return self._available

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
        if not self.is_available():
            raise BackendUnavailableError("librosa/soundfile not installed", strategy=self.name)

        offset = clip.start_time if clip is not None else 0.0
        duration = clip.duration if clip is not None else max_duration
        effective_timeout = timeout or self.timeout
        logger.debug("builtin decoding %s (offset %.1fs, timeout %.0fs)", source.name, offset, effective_timeout)

        outcome = run_callable(
            decode_to_wav,
            (str(source.path), str(output_path), self.sample_rate, offset, duration),
            timeout=effective_timeout,
            cancel_event=cancel_event,
        )
        return self._check_outcome(outcome, source, output_path)


class ExtractionCascade:
    """Ordered fallback chain of backends."""

    def __init__(self, backends: Sequence[AudioBackend]) -> None:
        if not backends:
            raise ValueError("cascade needs at least one backend")
        self.backends = list(backends)

    def order_for(self, source: SourceMedia) -> list[AudioBackend]:
        """Backends to try for ``source``, in order.

        Legacy containers go to full-featured backends first; everything else
        follows the configured priority.
        """
        if source.extension in FFMPEG_PREFERRED_FORMATS:
            return sorted(self.backends, key=lambda backend: not backend.full_featured)
        return list(self.backends)

    def get(self, name: str) -> AudioBackend | None:
        return next((backend for backend in self.backends if backend.name == name), None)

    def require_available(self) -> list[AudioBackend]:
        """Return the backends that can run.

        Raises:
            DependencyError: If no backend in the cascade is installed
        """
        available = [backend for backend in self.backends if backend.is_available()]
        if not available:
            names = ", ".join(backend.name for backend in self.backends)
            raise DependencyError(
                "extraction backend",
                f"None of the configured backends is available ({names})",
                INSTALL_HINT,
            )
        return available


def build_cascade(config: AudioConfig, sample_rate: int) -> ExtractionCascade:
    """Build the cascade named by ``config.backends``."""
    factories = {
        "ffmpeg": FFmpegBackend.from_config,
        "builtin": BuiltinBackend.from_config,
    }
    return ExtractionCascade([factories[name](config, sample_rate) for name in config.backends])
