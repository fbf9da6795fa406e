"""
speechsampler.batch - Bounded concurrent sampling of many sources.

Each source is one unit of work on a thread pool. Results are collected
by input index, so completion order never matters to callers. A failed
unit is recorded and the batch moves on.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from speechsampler.exceptions import (
    CANCELLED,
    ExtractionCancelledError,
    ExtractionError,
    HardFailureError,
)
from speechsampler.logging import get_logger
from speechsampler.models import ExtractionResult, SourceMedia
from speechsampler.sampler import SpeechSampler

logger = get_logger("batch")


@dataclass
class BatchResult:
    """Outcome of one unit, keyed by its position in the input."""

    index: int
    source: SourceMedia
    results: list[ExtractionResult] = field(default_factory=list)
    error: ExtractionError | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def skipped(self) -> bool:
        """Failed units are reported as skipped rather than crashing the batch."""
        return self.error is not None

    @property
    def cancelled(self) -> bool:
        return self.error is not None and self.error.kind == CANCELLED

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "source": str(self.source.path),
            "results": [r.to_dict() for r in self.results],
            "error": self.error.to_dict() if self.error else None,
            "elapsed": round(self.elapsed, 3),
        }


class BatchSampler:
    """Runs a SpeechSampler over many sources with bounded concurrency."""

    def __init__(self, sampler: SpeechSampler, max_concurrent: int | None = None) -> None:
        self.sampler = sampler
        self.max_concurrent = max_concurrent or sampler.audio_config.resolved_concurrency()
        self._lock = threading.Lock()
        self._batch_cancel = threading.Event()
        self._unit_events: dict[int, threading.Event] = {}

    def cancel(self) -> None:
        """Cancel every unit, queued or in flight."""
        self._batch_cancel.set()
        with self._lock:
            events = list(self._unit_events.values())
        for event in events:
            event.set()

    def cancel_unit(self, index: int) -> None:
        with self._lock:
            event = self._unit_events.setdefault(index, threading.Event())
        event.set()

    def _unit_event(self, index: int) -> threading.Event:
        with self._lock:
            event = self._unit_events.setdefault(index, threading.Event())
        if self._batch_cancel.is_set():
            event.set()
        return event

    def run(self, sources: list[SourceMedia | Path | str]) -> list[BatchResult]:
        """Sample every source; the returned list matches input order."""
        units = [s if isinstance(s, SourceMedia) else SourceMedia.from_path(s) for s in sources]
        collected: dict[int, BatchResult] = {}
        for index in range(len(units)):
            self._unit_event(index)

        logger.info("Sampling %d sources with %d workers", len(units), self.max_concurrent)
        with ThreadPoolExecutor(max_workers=self.max_concurrent, thread_name_prefix="unit") as executor:
            futures = [executor.submit(self._run_unit, index, source) for index, source in enumerate(units)]
            for future in futures:
                item = future.result()
                with self._lock:
                    collected[item.index] = item

        results = [collected[index] for index in range(len(units))]
        failed = sum(1 for r in results if not r.ok)
        logger.info("Batch complete: %d succeeded, %d skipped", len(results) - failed, failed)
        return results

    def _run_unit(self, index: int, source: SourceMedia) -> BatchResult:
        event = self._unit_event(index)
        start = time.monotonic()

        if event.is_set():
            return BatchResult(
                index=index,
                source=source,
                error=ExtractionCancelledError(f"Sampling of {source.name} cancelled before start"),
            )

        try:
            results = self.sampler.sample(source, cancel_event=event)
        except ExtractionError as e:
            logger.warning("Skipping %s: %s", source.name, e.describe())
            return BatchResult(index=index, source=source, error=e, elapsed=time.monotonic() - start)
        except Exception as e:
            error = HardFailureError(
                f"Unexpected failure sampling {source.name}",
                diagnostic=f"{type(e).__name__}: {e}",
            )
            error.__cause__ = e
            logger.error("Skipping %s: %s", source.name, error.describe())
            return BatchResult(index=index, source=source, error=error, elapsed=time.monotonic() - start)

        return BatchResult(index=index, source=source, results=results, elapsed=time.monotonic() - start)
