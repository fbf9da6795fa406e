"""
speechsampler.exceptions - Custom exception classes.

All speechsampler exceptions inherit from SpeechSamplerError. Extraction
failures additionally carry a ``kind`` from the error taxonomy surfaced to
callers, the strategy/attempt that produced them and the accumulated retry
count, so logs can tell "unsupported format" apart from "resource-starved".
"""

from __future__ import annotations

from typing import Any

BACKEND_UNAVAILABLE = "backend-unavailable"
TIMEOUT = "timeout"
EXTRACTION_FAILED = "extraction-failed"
OUTPUT_MISSING = "output-missing"
NO_AUDIO_TRACK = "no-audio-track"
INSUFFICIENT_SPEECH = "insufficient-speech"
HARD_FAILURE = "hard-failure"
CANCELLED = "cancelled"


class SpeechSamplerError(Exception):
    """Base exception for all speechsampler errors."""

    pass


class ConfigError(SpeechSamplerError):
    """Configuration loading or validation error."""

    pass


class DependencyError(SpeechSamplerError):
    """Required dependency missing or misconfigured."""

    def __init__(self, dependency: str, message: str, install_hint: str | None = None):
        self.dependency = dependency
        self.message = message
        self.install_hint = install_hint
        super().__init__(f"{dependency}: {message}")


class ExtractionError(SpeechSamplerError):
    """Audio extraction error.

    ``category`` is filled in by the error classifier once the failure has
    passed through the retry orchestrator.
    """

    kind = HARD_FAILURE
    default_message = "Audio extraction failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        diagnostic: str | None = None,
        strategy: str | None = None,
        attempt: int = 0,
        retry_count: int = 0,
    ) -> None:
        self.diagnostic = (diagnostic or "").strip()
        self.strategy = strategy
        self.attempt = attempt
        self.retry_count = retry_count
        self.category: str | None = None
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.default_message

    def describe(self) -> str:
        """One-line description including strategy and retry context."""
        parts = [f"[{self.kind}] {self.message}"]
        context = []
        if self.strategy:
            context.append(f"strategy={self.strategy}")
        if self.attempt:
            context.append(f"attempt={self.attempt}")
        context.append(f"retries={self.retry_count}")
        if self.category:
            context.append(f"category={self.category}")
        parts.append(f"({', '.join(context)})")
        if self.diagnostic and self.diagnostic not in self.message:
            parts.append(f": {self.diagnostic}")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "category": self.category,
            "message": self.message,
            "diagnostic": self.diagnostic,
            "strategy": self.strategy,
            "attempt": self.attempt,
            "retry_count": self.retry_count,
        }


class BackendUnavailableError(ExtractionError):
    """A strategy could not run at all (e.g. external tool missing)."""

    kind = BACKEND_UNAVAILABLE
    default_message = "Extraction backend is not available"


class ExtractionTimeoutError(ExtractionError):
    """An attempt was terminated because it reached its deadline."""

    kind = TIMEOUT
    default_message = "Audio extraction timed out"


class ExtractionFailedError(ExtractionError):
    """Backend ran but reported an error."""

    kind = EXTRACTION_FAILED
    default_message = "Audio extraction failed"


class OutputMissingError(ExtractionError):
    """Backend reported success but produced no readable artifact."""

    kind = OUTPUT_MISSING
    default_message = "Output file was not created"


class NoAudioTrackError(ExtractionError):
    """Source has no audio stream."""

    kind = NO_AUDIO_TRACK
    default_message = "No audio track found in file"


class InsufficientSpeechError(ExtractionError):
    """Voice activity detection collected too little speech."""

    kind = INSUFFICIENT_SPEECH
    default_message = "Not enough speech detected in media"


class HardFailureError(ExtractionError):
    """Unclassified or unexpected failure."""

    kind = HARD_FAILURE
    default_message = "Unexpected extraction failure"


class ExtractionCancelledError(ExtractionError):
    """The unit of work was cancelled by the caller."""

    kind = CANCELLED
    default_message = "Extraction was cancelled"


class CascadeExhaustedError(ExtractionError):
    """Every strategy in the cascade failed for one target range.

    The surfaced ``kind`` is derived from the last failure: a final
    ``no-speech`` classification concludes ``insufficient-speech``, and a
    cascade in which no backend could run at all is ``backend-unavailable``.
    """

    def __init__(
        self,
        message: str,
        *,
        last_error: ExtractionError | None,
        attempts: list[Any] | None = None,
        retry_count: int = 0,
    ) -> None:
        self.last_error = last_error
        self.attempts = list(attempts or [])
        super().__init__(
            message,
            diagnostic=last_error.diagnostic if last_error else None,
            strategy=last_error.strategy if last_error else None,
            attempt=len(self.attempts),
            retry_count=retry_count,
        )
        if last_error is None:
            self.kind = BACKEND_UNAVAILABLE
        elif last_error.category == "no-speech":
            self.kind = INSUFFICIENT_SPEECH
        else:
            self.kind = last_error.kind
        self.category = last_error.category if last_error else None
