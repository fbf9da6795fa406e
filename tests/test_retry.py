"""Tests for speechsampler.extract.retry module."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from speechsampler.exceptions import (
    CascadeExhaustedError,
    ExtractionCancelledError,
    ExtractionFailedError,
    ExtractionTimeoutError,
    HardFailureError,
    NoAudioTrackError,
    OutputMissingError,
)
from speechsampler.extract.backends import ExtractionCascade
from speechsampler.extract.classify import CODEC, HARD_FAILURE, NO_SPEECH, TRANSIENT
from speechsampler.extract.retry import RetryOrchestrator, backoff_delay, wait_backoff
from speechsampler.extract.tempfiles import TempFileManager
from speechsampler.models import ClipPosition, SourceMedia


def codec_error() -> ExtractionFailedError:
    return ExtractionFailedError("Audio extraction failed", diagnostic="Unsupported codec")


class TestBackoff:
    def test_exponential_delays(self) -> None:
        assert [backoff_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_wait_returns_immediately_when_cancelled(self) -> None:
        event = threading.Event()
        event.set()
        assert wait_backoff(30.0, event) is True

    def test_wait_without_event(self) -> None:
        assert wait_backoff(0.0) is False


class TestRetryOrchestrator:
    @pytest.fixture
    def source(self, speech_wav: Path) -> SourceMedia:
        return SourceMedia.from_path(speech_wav)

    def run(self, backends, wait, manager: TempFileManager, source: SourceMedia, **kwargs):
        orchestrator = RetryOrchestrator(ExtractionCascade(backends), max_retries=2, wait=wait)
        with manager.scope() as scope:
            outcome = orchestrator.run(source, scope, **kwargs)
            scope.keep(outcome.artifact)
        return outcome

    def test_first_backend_succeeds(self, make_backend, wait_recorder, temp_manager, source) -> None:
        primary = make_backend("primary")
        outcome = self.run([primary, make_backend("fallback")], wait_recorder, temp_manager, source)

        assert outcome.strategy == "primary"
        assert outcome.retry_count == 0
        assert outcome.artifact.exists()
        assert len(outcome.attempts) == 1

    def test_codec_failure_falls_through_without_delay(
        self, make_backend, wait_recorder, temp_manager, source
    ) -> None:
        """A codec failure moves on to the next backend immediately."""
        primary = make_backend("primary", script=[codec_error()])
        fallback = make_backend("fallback")

        outcome = self.run([primary, fallback], wait_recorder, temp_manager, source)

        assert outcome.strategy == "fallback"
        assert outcome.retry_count == 0
        assert wait_recorder.delays == []
        assert outcome.attempts[0].error.category == CODEC

    def test_transient_failures_retry_with_backoff(
        self, make_backend, wait_recorder, temp_manager, source
    ) -> None:
        primary = make_backend("primary", script=[ExtractionTimeoutError(), ExtractionTimeoutError()])
        fallback = make_backend("fallback")

        outcome = self.run([primary, fallback], wait_recorder, temp_manager, source)

        assert outcome.strategy == "primary"
        assert outcome.retry_count == 2
        assert wait_recorder.delays == [1.0, 2.0]
        assert len(primary.calls) == 3
        assert fallback.calls == []

    def test_transient_failure_surfaces_after_retry_cap(
        self, make_backend, wait_recorder, temp_manager, source
    ) -> None:
        primary = make_backend("primary", script=[ExtractionTimeoutError() for _ in range(3)])
        fallback = make_backend("fallback")

        with pytest.raises(ExtractionTimeoutError) as exc_info:
            self.run([primary, fallback], wait_recorder, temp_manager, source)

        assert exc_info.value.category == TRANSIENT
        assert exc_info.value.retry_count == 2
        assert exc_info.value.strategy == "primary"
        assert fallback.calls == []

    def test_transient_retry_disabled(self, make_backend, wait_recorder, temp_manager, source) -> None:
        primary = make_backend("primary", script=[ExtractionTimeoutError()])
        orchestrator = RetryOrchestrator(
            ExtractionCascade([primary]), max_retries=2, retry_transient=False, wait=wait_recorder
        )

        with temp_manager.scope() as scope, pytest.raises(ExtractionTimeoutError):
            orchestrator.run(source, scope)

        assert wait_recorder.delays == []

    def test_hard_failure_aborts_cascade(self, make_backend, wait_recorder, temp_manager, source) -> None:
        primary = make_backend("primary", script=[ExtractionFailedError("boom", diagnostic="Killed")])
        fallback = make_backend("fallback")

        with pytest.raises(ExtractionFailedError) as exc_info:
            self.run([primary, fallback], wait_recorder, temp_manager, source)

        assert exc_info.value.category == HARD_FAILURE
        assert fallback.calls == []

    def test_unexpected_exception_becomes_hard_failure(
        self, make_backend, wait_recorder, temp_manager, source
    ) -> None:
        primary = make_backend("primary", script=[RuntimeError("kaboom")])

        with pytest.raises(HardFailureError) as exc_info:
            self.run([primary, make_backend("fallback")], wait_recorder, temp_manager, source)

        assert "kaboom" in exc_info.value.diagnostic
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_no_speech_moves_to_next_backend(self, make_backend, wait_recorder, temp_manager, source) -> None:
        primary = make_backend("primary", script=[OutputMissingError("Output file is empty for x.mp4")])
        outcome = self.run([primary, make_backend("fallback")], wait_recorder, temp_manager, source)

        assert outcome.strategy == "fallback"
        assert outcome.attempts[0].error.category == NO_SPEECH

    def test_exhausted_no_speech_concludes_insufficient_speech(
        self, make_backend, wait_recorder, temp_manager, source
    ) -> None:
        primary = make_backend("primary", script=[NoAudioTrackError()])
        fallback = make_backend("fallback", script=[NoAudioTrackError()])

        with pytest.raises(CascadeExhaustedError) as exc_info:
            self.run([primary, fallback], wait_recorder, temp_manager, source)

        assert exc_info.value.kind == "insufficient-speech"
        assert len(exc_info.value.attempts) == 2

    def test_exhausted_codec_keeps_last_kind(self, make_backend, wait_recorder, temp_manager, source) -> None:
        backends = [make_backend("a", script=[codec_error()]), make_backend("b", script=[codec_error()])]

        with pytest.raises(CascadeExhaustedError) as exc_info:
            self.run(backends, wait_recorder, temp_manager, source)

        assert exc_info.value.kind == "extraction-failed"
        assert exc_info.value.category == CODEC

    def test_unavailable_backend_is_skipped(self, make_backend, wait_recorder, temp_manager, source) -> None:
        missing = make_backend("missing", available=False)
        outcome = self.run([missing, make_backend("fallback")], wait_recorder, temp_manager, source)

        assert outcome.strategy == "fallback"
        assert missing.calls == []
        assert len(outcome.attempts) == 1

    def test_no_available_backend(self, make_backend, wait_recorder, temp_manager, source) -> None:
        with pytest.raises(CascadeExhaustedError) as exc_info:
            self.run([make_backend("missing", available=False)], wait_recorder, temp_manager, source)

        assert exc_info.value.kind == "backend-unavailable"

    def test_cancelled_before_first_attempt(self, make_backend, wait_recorder, temp_manager, source) -> None:
        primary = make_backend("primary")
        event = threading.Event()
        event.set()

        with pytest.raises(ExtractionCancelledError):
            self.run([primary], wait_recorder, temp_manager, source, cancel_event=event)

        assert primary.calls == []

    def test_cancelled_during_backoff(self, make_backend, wait_recorder, temp_manager, source) -> None:
        primary = make_backend("primary", script=[ExtractionTimeoutError()])
        wait_recorder.cancel = True

        with pytest.raises(ExtractionCancelledError):
            self.run([primary], wait_recorder, temp_manager, source, cancel_event=threading.Event())

        assert wait_recorder.delays == [1.0]
        assert len(primary.calls) == 1

    def test_failed_attempt_artifacts_are_deleted(self, make_backend, wait_recorder, temp_manager, source) -> None:
        primary = make_backend("primary", script=[ExtractionTimeoutError(), codec_error()], write_partial=True)
        fallback = make_backend("fallback")

        outcome = self.run([primary, fallback], wait_recorder, temp_manager, source)

        assert [p for p in temp_manager.root.iterdir()] == [outcome.artifact]
        for call in primary.calls:
            assert not call["output_path"].exists()

    def test_clip_and_timeout_are_forwarded(self, make_backend, wait_recorder, temp_manager, source) -> None:
        primary = make_backend("primary")
        clip = ClipPosition(start_time=2.0, duration=5.0, index=1)

        outcome = self.run([primary], wait_recorder, temp_manager, source, clip=clip, timeout=30.0)

        assert primary.calls[0]["clip"] == clip
        assert primary.calls[0]["timeout"] == 30.0
        assert outcome.attempts[0].clip == clip

    def test_separation_only_for_capable_backends(self, make_backend, wait_recorder, temp_manager, source) -> None:
        plain = make_backend("plain", script=[NoAudioTrackError()])
        capable = make_backend("capable", supports_separation=True)

        self.run([plain, capable], wait_recorder, temp_manager, source, apply_separation=True)

        assert plain.calls[0]["apply_separation"] is False
        assert capable.calls[0]["apply_separation"] is True
