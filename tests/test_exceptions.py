"""Tests for speechsampler.exceptions and speechsampler.models."""

from __future__ import annotations

from pathlib import Path

from speechsampler.exceptions import (
    CascadeExhaustedError,
    ExtractionFailedError,
    ExtractionTimeoutError,
    OutputMissingError,
    SpeechSamplerError,
)
from speechsampler.models import ClipPosition, ExtractionResult, SourceMedia


class TestExtractionError:
    def test_kind_per_subclass(self) -> None:
        assert ExtractionTimeoutError().kind == "timeout"
        assert OutputMissingError().kind == "output-missing"
        assert isinstance(ExtractionFailedError(), SpeechSamplerError)

    def test_default_message(self) -> None:
        assert str(OutputMissingError()) == "Output file was not created"

    def test_describe_includes_context(self) -> None:
        error = ExtractionFailedError("ffmpeg exited 1", diagnostic="Invalid data found", strategy="ffmpeg", attempt=2)
        error.category = "format-unsupported"

        text = error.describe()

        assert text.startswith("[extraction-failed] ffmpeg exited 1")
        assert "strategy=ffmpeg" in text
        assert "attempt=2" in text
        assert "category=format-unsupported" in text
        assert text.endswith(": Invalid data found")

    def test_to_dict(self) -> None:
        data = ExtractionTimeoutError(strategy="builtin", retry_count=1).to_dict()
        assert data["kind"] == "timeout"
        assert data["strategy"] == "builtin"
        assert data["retry_count"] == 1


class TestCascadeExhaustedError:
    def test_kind_follows_last_error(self) -> None:
        last = ExtractionTimeoutError(strategy="builtin")
        error = CascadeExhaustedError("all failed", last_error=last, attempts=[1, 2])

        assert error.kind == "timeout"
        assert error.strategy == "builtin"
        assert error.attempt == 2

    def test_no_speech_becomes_insufficient_speech(self) -> None:
        last = OutputMissingError()
        last.category = "no-speech"

        assert CascadeExhaustedError("all failed", last_error=last).kind == "insufficient-speech"

    def test_nothing_ran(self) -> None:
        assert CascadeExhaustedError("none ran", last_error=None).kind == "backend-unavailable"


class TestModels:
    def test_source_extension_prefers_hint(self) -> None:
        assert SourceMedia.from_path("talk.MP4").extension == "mp4"
        assert SourceMedia.from_path("talk.bin", container_format=".AVI").extension == "avi"

    def test_clip_end_time(self) -> None:
        assert ClipPosition(start_time=900.0, duration=45.0, index=1).end_time == 945.0

    def test_result_to_dict(self, tmp_path: Path) -> None:
        result = ExtractionResult(
            source=SourceMedia.from_path(tmp_path / "talk.mp4"),
            artifact=tmp_path / "clip1.wav",
            speech_duration=12.34567,
            total_scanned=45.0,
            segment_count=3,
            processing_time=0.5,
            strategy="ffmpeg",
            clip=ClipPosition(start_time=900.0, duration=45.0, index=1),
        )
        data = result.to_dict()

        assert data["speech_duration"] == 12.346
        assert data["clip_index"] == 1
        assert data["strategy"] == "ffmpeg"
