"""Shared data types used across speechsampler."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from speechsampler.exceptions import ExtractionError


@dataclass(frozen=True)
class TimeRange:
    """A half-open [start, end) interval in seconds."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class ClipPosition:
    """A planned sampling window within a longer source."""

    start_time: float
    duration: float
    index: int

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


@dataclass(frozen=True)
class SourceMedia:
    """Reference to an input file.

    ``duration`` and ``container_format`` are optional hints; the sampler
    probes the file itself when they are missing.
    """

    path: Path
    duration: float | None = None
    container_format: str | None = None

    @classmethod
    def from_path(
        cls,
        path: Path | str,
        duration: float | None = None,
        container_format: str | None = None,
    ) -> SourceMedia:
        return cls(path=Path(path), duration=duration, container_format=container_format)

    @property
    def extension(self) -> str:
        """Container hint if given, otherwise the lower-cased file suffix."""
        if self.container_format:
            return self.container_format.lower().lstrip(".")
        return self.path.suffix.lower().lstrip(".")

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class MediaInfo:
    """Metadata extracted from a media file via ffprobe."""

    duration: float | None
    container: str | None = None
    has_audio: bool = False
    has_video: bool = False
    audio_codec: str | None = None
    sample_rate: int | None = None
    channels: int | None = None


@dataclass
class ExtractionAttempt:
    """One backend invocation against one target range. Never persisted."""

    strategy: str
    clip: ClipPosition | None
    retry_count: int
    elapsed: float
    artifact: Path | None = None
    error: ExtractionError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.artifact is not None


@dataclass
class ExtractionResult:
    """A speech-bearing audio artifact for one requested unit or range.

    ``artifact`` is a temporary file owned by the sampler's temp manager
    until the caller releases, moves or cleans it up.
    """

    source: SourceMedia
    artifact: Path
    speech_duration: float
    total_scanned: float
    segment_count: int
    processing_time: float
    strategy: str = ""
    retry_count: int = 0
    clip: ClipPosition | None = None
    attempts: list[ExtractionAttempt] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": str(self.source.path),
            "artifact": str(self.artifact),
            "speech_duration": round(self.speech_duration, 3),
            "total_scanned": round(self.total_scanned, 3),
            "segment_count": self.segment_count,
            "processing_time": round(self.processing_time, 3),
            "strategy": self.strategy,
            "retry_count": self.retry_count,
            "clip_index": self.clip.index if self.clip else None,
        }
