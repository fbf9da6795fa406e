"""
speechsampler.extract.classify - Failure classification for retry decisions.

Maps any extraction failure onto one of four recovery categories:

- transient: timeout, resource pressure, network-adjacent; retry the same
  strategy with backoff
- no-speech: the backend ran but found no usable audio; try the next strategy
- codec: format/codec incompatibility; try the next strategy
- hard-failure: anything else; abort and surface to the caller
"""

from __future__ import annotations

from speechsampler.exceptions import (
    BACKEND_UNAVAILABLE,
    CANCELLED,
    INSUFFICIENT_SPEECH,
    NO_AUDIO_TRACK,
    TIMEOUT,
    ExtractionError,
)

TRANSIENT = "transient"
NO_SPEECH = "no-speech"
CODEC = "codec"
HARD_FAILURE = "hard-failure"

NO_SPEECH_MARKERS = (
    "no speech",
    "not enough speech",
    "no audio",
    "does not contain any stream",
    "matches no streams",
    "output file is empty",
    "1110",
    "-11800",
)

CODEC_MARKERS = (
    "codec",
    "format",
    "compatible",
    "invalid data found",
    "unsupported",
    "not recognised",
    "not recognized",
    "nobackenderror",
    "libsndfileerror",
    "decoder",
)

TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "network",
    "connection",
    "memory",
    "pressure",
    "resource temporarily unavailable",
    "too many open files",
)

_KIND_CATEGORIES = {
    TIMEOUT: TRANSIENT,
    NO_AUDIO_TRACK: NO_SPEECH,
    INSUFFICIENT_SPEECH: NO_SPEECH,
    BACKEND_UNAVAILABLE: CODEC,
    CANCELLED: HARD_FAILURE,
}


def classify_text(text: str) -> str:
    """Classify free-form diagnostic text."""
    description = text.lower()

    if any(marker in description for marker in NO_SPEECH_MARKERS):
        return NO_SPEECH
    if any(marker in description for marker in CODEC_MARKERS):
        return CODEC
    if any(marker in description for marker in TRANSIENT_MARKERS):
        return TRANSIENT
    return HARD_FAILURE


def classify_error(error: BaseException) -> str:
    """Classify an exception raised by an extraction backend.

    Structured extraction errors are mapped by kind first; everything else
    falls back to matching the message and diagnostic text.
    """
    if isinstance(error, ExtractionError):
        category = _KIND_CATEGORIES.get(error.kind)
        if category is not None:
            return category
        return classify_text(f"{error.message}\n{error.diagnostic}")

    if isinstance(error, (MemoryError, TimeoutError)):
        return TRANSIENT
    return classify_text(f"{type(error).__name__}: {error}")
