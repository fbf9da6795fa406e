"""
speechsampler.extract.retry - Retry orchestration across the backend cascade.

Drives one target range (whole file or a planned clip) through the cascade:

- transient failures retry the same backend after 2^n seconds, up to the
  retry cap, then surface
- no-speech and codec failures move to the next backend without delay
- hard failures abort immediately
- unavailable backends are skipped

Artifacts of failed attempts are deleted as soon as the attempt ends.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from speechsampler.exceptions import (
    CascadeExhaustedError,
    ExtractionCancelledError,
    ExtractionError,
    HardFailureError,
)
from speechsampler.extract.backends import AudioBackend, ExtractionCascade
from speechsampler.extract.classify import CODEC, HARD_FAILURE, NO_SPEECH, TRANSIENT, classify_error
from speechsampler.extract.tempfiles import TempScope
from speechsampler.logging import get_logger
from speechsampler.models import ClipPosition, ExtractionAttempt, SourceMedia

logger = get_logger("extract.retry")

Waiter = Callable[[float, threading.Event | None], bool]


def wait_backoff(delay: float, cancel_event: threading.Event | None = None) -> bool:
    """Sleep for ``delay`` seconds; return True if cancelled while waiting."""
    if cancel_event is None:
        time.sleep(delay)
        return False
    return cancel_event.wait(delay)


def backoff_delay(retry_count: int) -> float:
    """Exponential backoff: 1s, 2s, 4s, ..."""
    return float(2**retry_count)


@dataclass
class OrchestrationOutcome:
    """Successful resolution of one target range."""

    artifact: Path
    strategy: str
    retry_count: int
    attempts: list[ExtractionAttempt] = field(default_factory=list)
    elapsed: float = 0.0


class RetryOrchestrator:
    """Runs the cascade for one target with classification between attempts."""

    def __init__(
        self,
        cascade: ExtractionCascade,
        max_retries: int = 2,
        retry_transient: bool = True,
        wait: Waiter | None = None,
    ) -> None:
        self.cascade = cascade
        self.max_retries = max_retries
        self.retry_transient = retry_transient
        self._wait = wait or wait_backoff

    def run(
        self,
        source: SourceMedia,
        scope: TempScope,
        clip: ClipPosition | None = None,
        timeout: float | None = None,
        max_duration: float | None = None,
        cancel_event: threading.Event | None = None,
        apply_separation: bool = False,
        backends: list[AudioBackend] | None = None,
    ) -> OrchestrationOutcome:
        """Extract ``clip`` (or the whole source) with retries and fallback.

        Raises:
            ExtractionCancelledError: If ``cancel_event`` is set
            ExtractionError: Hard failures and exhausted transient retries
            CascadeExhaustedError: If no backend produced an artifact
        """
        start = time.monotonic()
        attempts: list[ExtractionAttempt] = []
        total_retries = 0
        last_error: ExtractionError | None = None
        candidates = backends if backends is not None else self.cascade.order_for(source)

        for backend in candidates:
            if not backend.is_available():
                logger.info("Skipping unavailable backend %s for %s", backend.name, source.name)
                continue

            retry_count = 0
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    raise ExtractionCancelledError(
                        f"Extraction of {source.name} cancelled",
                        strategy=backend.name,
                        attempt=len(attempts),
                        retry_count=total_retries,
                    )

                output_path = scope.create(suffix="wav", purpose=backend.name)
                attempt_start = time.monotonic()
                try:
                    artifact = backend.extract(
                        source,
                        output_path,
                        clip=clip,
                        max_duration=max_duration,
                        timeout=timeout,
                        cancel_event=cancel_event,
                        apply_separation=apply_separation and backend.supports_separation,
                    )
                except ExtractionCancelledError:
                    scope.discard(output_path)
                    raise
                except ExtractionError as e:
                    scope.discard(output_path)
                    error = e
                except Exception as e:
                    scope.discard(output_path)
                    error = HardFailureError(
                        f"Unexpected {backend.name} failure for {source.name}",
                        diagnostic=f"{type(e).__name__}: {e}",
                    )
                    error.__cause__ = e
                else:
                    attempts.append(
                        ExtractionAttempt(
                            strategy=backend.name,
                            clip=clip,
                            retry_count=retry_count,
                            elapsed=time.monotonic() - attempt_start,
                            artifact=artifact,
                        )
                    )
                    return OrchestrationOutcome(
                        artifact=artifact,
                        strategy=backend.name,
                        retry_count=total_retries,
                        attempts=attempts,
                        elapsed=time.monotonic() - start,
                    )

                error.strategy = backend.name
                error.attempt = len(attempts) + 1
                error.retry_count = total_retries
                error.category = classify_error(error)
                attempts.append(
                    ExtractionAttempt(
                        strategy=backend.name,
                        clip=clip,
                        retry_count=retry_count,
                        elapsed=time.monotonic() - attempt_start,
                        error=error,
                    )
                )
                last_error = error

                if error.category == TRANSIENT:
                    if not self.retry_transient or retry_count >= self.max_retries:
                        logger.warning("Transient failure persisted after %d retries: %s", retry_count, error.describe())
                        raise error
                    delay = backoff_delay(retry_count)
                    retry_count += 1
                    total_retries += 1
                    logger.info(
                        "Transient error from %s, retry %d/%d after %.1fs",
                        backend.name,
                        retry_count,
                        self.max_retries,
                        delay,
                    )
                    if self._wait(delay, cancel_event):
                        raise ExtractionCancelledError(
                            f"Extraction of {source.name} cancelled during backoff",
                            strategy=backend.name,
                            attempt=len(attempts),
                            retry_count=total_retries,
                        )
                    continue

                if error.category in (NO_SPEECH, CODEC):
                    logger.info("%s: %s, trying next backend", backend.name, error.describe())
                    break

                if error.category == HARD_FAILURE:
                    logger.error("Hard failure, aborting: %s", error.describe())
                    raise error

        raise CascadeExhaustedError(
            f"All extraction strategies failed for {source.name}",
            last_error=last_error,
            attempts=attempts,
            retry_count=total_retries,
        )
