"""Tests for speechsampler.extract.classify module."""

from __future__ import annotations

import pytest

from speechsampler.exceptions import (
    BackendUnavailableError,
    ExtractionCancelledError,
    ExtractionFailedError,
    ExtractionTimeoutError,
    InsufficientSpeechError,
    NoAudioTrackError,
    OutputMissingError,
)
from speechsampler.extract.classify import (
    CODEC,
    HARD_FAILURE,
    NO_SPEECH,
    TRANSIENT,
    classify_error,
    classify_text,
)


class TestClassifyText:
    @pytest.mark.parametrize(
        "text",
        [
            "Stream map '0:a' matches no streams.",
            "Output file #0 does not contain any stream",
            "No audio track found",
            "Not enough speech detected",
            "Error Domain=AVFoundationErrorDomain Code=-11800",
        ],
    )
    def test_no_speech(self, text: str) -> None:
        assert classify_text(text) == NO_SPEECH

    @pytest.mark.parametrize(
        "text",
        [
            "Invalid data found when processing input",
            "Unsupported codec id",
            "Format not recognised",
            "NoBackendError",
            "LibsndfileError: Error opening file",
        ],
    )
    def test_codec(self, text: str) -> None:
        assert classify_text(text) == CODEC

    @pytest.mark.parametrize(
        "text",
        [
            "Operation timed out",
            "Connection reset by peer",
            "Cannot allocate memory",
            "Resource temporarily unavailable",
            "Too many open files",
        ],
    )
    def test_transient(self, text: str) -> None:
        assert classify_text(text) == TRANSIENT

    def test_unknown_is_hard_failure(self) -> None:
        assert classify_text("Segmentation fault") == HARD_FAILURE

    def test_case_insensitive(self) -> None:
        assert classify_text("INVALID DATA FOUND") == CODEC

    def test_no_speech_wins_over_codec(self) -> None:
        assert classify_text("no audio stream in format mkv") == NO_SPEECH


class TestClassifyError:
    def test_timeout_kind_is_transient(self) -> None:
        assert classify_error(ExtractionTimeoutError()) == TRANSIENT

    def test_no_audio_track_is_no_speech(self) -> None:
        assert classify_error(NoAudioTrackError()) == NO_SPEECH

    def test_insufficient_speech_is_no_speech(self) -> None:
        assert classify_error(InsufficientSpeechError()) == NO_SPEECH

    def test_unavailable_backend_moves_on(self) -> None:
        assert classify_error(BackendUnavailableError()) == CODEC

    def test_cancelled_is_hard_failure(self) -> None:
        assert classify_error(ExtractionCancelledError()) == HARD_FAILURE

    def test_failed_extraction_uses_diagnostic(self) -> None:
        error = ExtractionFailedError("Audio extraction failed for a.mkv", diagnostic="Invalid data found")
        assert classify_error(error) == CODEC

    def test_failed_extraction_without_markers(self) -> None:
        error = ExtractionFailedError("Audio extraction failed for a.mp4", diagnostic="Killed")
        assert classify_error(error) == HARD_FAILURE

    def test_empty_output_is_no_speech(self) -> None:
        assert classify_error(OutputMissingError("Output file is empty for a.mp4")) == NO_SPEECH

    def test_missing_output_is_hard_failure(self) -> None:
        assert classify_error(OutputMissingError("Output file was not created for a.mp4")) == HARD_FAILURE

    def test_builtin_exceptions(self) -> None:
        assert classify_error(MemoryError()) == TRANSIENT
        assert classify_error(TimeoutError("slow")) == TRANSIENT
        assert classify_error(RuntimeError("boom")) == HARD_FAILURE
        assert classify_error(ValueError("unsupported format")) == CODEC
