"""
speechsampler.sampler - Speech sample extraction for one source.

Two paths produce bounded, speech-bearing artifacts:

- Whole-file: decode up to the maximum scan duration through the backend
  cascade, run energy VAD over it and keep only merged speech ranges,
  capped at the target speech duration
- Multi-clip: for long media, extract a few distributed windows, each
  through the cascade with a duration-scaled timeout, optionally trimming
  silence from each with the same VAD pipeline

``sample`` picks the path from the source duration.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from speechsampler.analyze.energy import analyze_energy
from speechsampler.analyze.merge import merge_segments
from speechsampler.analyze.segmenter import SpeechSegmenter
from speechsampler.config import AudioConfig, SamplerConfig
from speechsampler.exceptions import (
    BackendUnavailableError,
    ExtractionCancelledError,
    ExtractionError,
    ExtractionFailedError,
    ExtractionTimeoutError,
    InsufficientSpeechError,
)
from speechsampler.extract.backends import AudioBackend, ExtractionCascade, FFmpegBackend, build_cascade
from speechsampler.extract.planner import ClipPlanner
from speechsampler.extract.probe import probe_duration_builtin, probe_media
from speechsampler.extract.retry import RetryOrchestrator, Waiter
from speechsampler.extract.tempfiles import TempFileManager, TempScope
from speechsampler.io import audio_duration, audio_sample_rate, iter_chunks, write_segments
from speechsampler.logging import get_logger
from speechsampler.models import ClipPosition, ExtractionResult, SourceMedia, TimeRange

logger = get_logger("sampler")

MAX_CLIP_WORKERS = 2


class SpeechSampler:
    """Extracts representative speech audio from media files.

    Args:
        sampler_config: VAD settings (defaults to the thorough preset)
        audio_config: Clip planning / retry / backend settings
        backends: Explicit backend cascade; built from ``audio_config`` if omitted
        temp_manager: Owner of temporary artifacts
        wait: Backoff waiter, injectable for tests
        refine_clips: Trim silence from extracted clips with VAD
    """

    def __init__(
        self,
        sampler_config: SamplerConfig | None = None,
        audio_config: AudioConfig | None = None,
        backends: list[AudioBackend] | None = None,
        temp_manager: TempFileManager | None = None,
        wait: Waiter | None = None,
        refine_clips: bool = True,
    ) -> None:
        self.sampler_config = sampler_config or SamplerConfig.default()
        self.audio_config = audio_config or AudioConfig.default()
        self.temp_manager = temp_manager or TempFileManager()
        self.refine_clips = refine_clips

        if backends is None:
            self.cascade = build_cascade(self.audio_config, self.sampler_config.output_sample_rate)
        else:
            self.cascade = ExtractionCascade(backends)

        self.planner = ClipPlanner(self.audio_config)
        self.orchestrator = RetryOrchestrator(
            self.cascade,
            max_retries=self.audio_config.max_retries_per_clip,
            retry_transient=self.audio_config.retry_transient_errors,
            wait=wait,
        )

    @property
    def speech_budget(self) -> float:
        """Stricter of the VAD target and the total clip audio budget."""
        return min(
            self.sampler_config.target_speech_duration,
            self.audio_config.max_total_audio_duration,
        )

    # Source resolution

    def resolve_source(self, source: SourceMedia | Path | str) -> SourceMedia:
        """Fill in duration and container format by probing when missing."""
        if not isinstance(source, SourceMedia):
            source = SourceMedia.from_path(source)
        if source.duration is not None:
            return source

        ffmpeg = self.cascade.get("ffmpeg")
        ffprobe = ffmpeg.find_ffprobe() if isinstance(ffmpeg, FFmpegBackend) else None
        if ffprobe:
            try:
                info = probe_media(source.path, ffprobe=ffprobe)
            except (BackendUnavailableError, ExtractionTimeoutError, ExtractionFailedError) as e:
                logger.warning("ffprobe could not read %s, falling back to librosa: %s", source.name, e.describe())
                info = None
            if info is not None:
                container = source.container_format
                if container is None and info.container:
                    container = info.container.split(",")[0]
                return SourceMedia(path=source.path, duration=info.duration, container_format=container)

        duration = probe_duration_builtin(source.path)
        return SourceMedia(path=source.path, duration=duration, container_format=source.container_format)

    # Whole-file path

    def extract_speech(
        self,
        source: SourceMedia | Path | str,
        cancel_event: threading.Event | None = None,
    ) -> ExtractionResult:
        """Extract only the speech of a source into one artifact.

        Raises:
            InsufficientSpeechError: If VAD found no usable speech
            ExtractionError: If every backend failed or a hard failure occurred
        """
        if not isinstance(source, SourceMedia):
            source = SourceMedia.from_path(source)
        start = time.monotonic()

        with self.temp_manager.scope() as scope:
            outcome = self.orchestrator.run(
                source,
                scope,
                timeout=self.audio_config.extraction_timeout,
                max_duration=self.sampler_config.max_scan_duration,
                cancel_event=cancel_event,
            )

            segments, scanned = self.detect_segments(outcome.artifact)
            if not segments:
                raise InsufficientSpeechError(
                    f"No speech detected in {source.name} after scanning {scanned:.1f}s",
                    strategy=outcome.strategy,
                    attempt=len(outcome.attempts),
                    retry_count=outcome.retry_count,
                )

            output_path = scope.create(suffix="wav", purpose="speech")
            speech_duration = write_segments(outcome.artifact, segments, output_path)
            scope.keep(output_path)

        processing_time = time.monotonic() - start
        logger.info(
            "Extracted %.1fs of speech from %s (%d segments, %.1fs scanned) in %.2fs",
            speech_duration,
            source.name,
            len(segments),
            scanned,
            processing_time,
        )
        return ExtractionResult(
            source=source,
            artifact=output_path,
            speech_duration=speech_duration,
            total_scanned=scanned,
            segment_count=len(segments),
            processing_time=processing_time,
            strategy=outcome.strategy,
            retry_count=outcome.retry_count,
            attempts=outcome.attempts,
        )

    def detect_segments(self, audio_path: Path) -> tuple[list[TimeRange], float]:
        """Run energy VAD over a decoded artifact.

        Returns:
            Tuple of (merged speech ranges within budget, seconds scanned)
        """
        config = self.sampler_config
        frames = analyze_energy(
            iter_chunks(audio_path, config.chunk_size),
            sample_rate=audio_sample_rate(audio_path),
            window=config.smoothing_window,
        )
        segmenter = SpeechSegmenter.from_config(config)
        raw_segments = segmenter.run(frames)
        merged = merge_segments(
            raw_segments,
            max_gap=config.merge_gap,
            max_total=self.speech_budget,
        )
        return merged, segmenter.current_time

    # Multi-clip path

    def extract_clips(
        self,
        source: SourceMedia | Path | str,
        cancel_event: threading.Event | None = None,
        max_workers: int = MAX_CLIP_WORKERS,
    ) -> list[ExtractionResult]:
        """Extract the planned clips of a source, in planned order.

        Clips are extracted independently and may finish out of order. Failed
        clips are logged and omitted; if every clip fails, the last error is
        raised. The summed speech of the returned clips stays within
        ``speech_budget``.
        """
        source = self.resolve_source(source)
        clips = self.planner.plan(source.duration)
        if not clips:
            raise InsufficientSpeechError(
                f"No clip positions could be planned for {source.name} (duration {source.duration})"
            )

        start = time.monotonic()
        results: dict[int, ExtractionResult] = {}
        errors: dict[int, ExtractionError] = {}

        with self.temp_manager.scope() as scope:
            workers = max(1, min(max_workers, len(clips)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="clip") as executor:
                futures = {
                    executor.submit(self._extract_clip, source, clip, scope, cancel_event): clip
                    for clip in clips
                }
                for future, clip in futures.items():
                    try:
                        results[clip.index] = future.result()
                    except ExtractionError as e:
                        errors[clip.index] = e
                        logger.warning("Clip %d of %s failed: %s", clip.index, source.name, e.describe())

            if cancel_event is not None and cancel_event.is_set():
                raise ExtractionCancelledError(f"Multi-clip extraction of {source.name} cancelled")
            if not results:
                raise errors[max(errors)]

            ordered = self._apply_speech_budget([results[index] for index in sorted(results)], scope)
            if not ordered:
                raise InsufficientSpeechError(
                    f"No clip of {source.name} fits the {self.speech_budget:.1f}s speech budget"
                )

        logger.info(
            "Multi-clip summary for %s: %d kept, %d dropped, %d failed in %.2fs",
            source.name,
            len(ordered),
            len(results) - len(ordered),
            len(errors),
            time.monotonic() - start,
        )
        return ordered

    def _apply_speech_budget(self, results: list[ExtractionResult], scope: TempScope) -> list[ExtractionResult]:
        """Keep clips in planned order while their summed speech fits the budget.

        A clip that would overflow the budget is dropped whole and its
        artifact deleted; later, shorter clips may still fit.
        """
        budget = self.speech_budget
        kept: list[ExtractionResult] = []
        total = 0.0
        for result in results:
            if total + result.speech_duration <= budget:
                kept.append(result)
                total += result.speech_duration
            else:
                logger.debug(
                    "Dropped clip %d of %s (%.1fs speech, %.1fs of %.1fs budget used)",
                    result.clip.index if result.clip else -1,
                    result.source.name,
                    result.speech_duration,
                    total,
                    budget,
                )
                scope.discard(result.artifact)
        return kept

    def _extract_clip(
        self,
        source: SourceMedia,
        clip: ClipPosition,
        scope: TempScope,
        cancel_event: threading.Event | None,
    ) -> ExtractionResult:
        start = time.monotonic()
        timeout = self.planner.timeout_for(clip)
        outcome = self.orchestrator.run(source, scope, clip=clip, timeout=timeout, cancel_event=cancel_event)

        if not self.refine_clips:
            scope.keep(outcome.artifact)
            duration = audio_duration(outcome.artifact)
            return ExtractionResult(
                source=source,
                artifact=outcome.artifact,
                speech_duration=duration,
                total_scanned=clip.duration,
                segment_count=1,
                processing_time=time.monotonic() - start,
                strategy=outcome.strategy,
                retry_count=outcome.retry_count,
                clip=clip,
                attempts=outcome.attempts,
            )

        segments, scanned = self.detect_segments(outcome.artifact)

        if not segments and self.audio_config.enable_audio_separation:
            separating = [
                backend
                for backend in self.cascade.order_for(source)
                if backend.supports_separation
            ]
            if separating:
                logger.info("No speech in clip %d of %s; retrying with speech isolation", clip.index, source.name)
                scope.discard(outcome.artifact)
                outcome = self.orchestrator.run(
                    source,
                    scope,
                    clip=clip,
                    timeout=timeout,
                    cancel_event=cancel_event,
                    apply_separation=True,
                    backends=separating,
                )
                segments, scanned = self.detect_segments(outcome.artifact)

        if not segments:
            scope.discard(outcome.artifact)
            raise InsufficientSpeechError(
                f"No speech detected in clip {clip.index} of {source.name}",
                strategy=outcome.strategy,
                attempt=len(outcome.attempts),
                retry_count=outcome.retry_count,
            )

        output_path = scope.create(suffix="wav", purpose=f"clip{clip.index}")
        speech_duration = write_segments(outcome.artifact, segments, output_path)
        scope.keep(output_path)
        scope.discard(outcome.artifact)

        return ExtractionResult(
            source=source,
            artifact=output_path,
            speech_duration=speech_duration,
            total_scanned=scanned,
            segment_count=len(segments),
            processing_time=time.monotonic() - start,
            strategy=outcome.strategy,
            retry_count=outcome.retry_count,
            clip=clip,
            attempts=outcome.attempts,
        )

    # Dispatch

    def sample(
        self,
        source: SourceMedia | Path | str,
        cancel_event: threading.Event | None = None,
    ) -> list[ExtractionResult]:
        """Sample a source with the path suited to its duration.

        Media up to the short-media threshold (or of unknown length) is
        scanned whole with VAD; longer media is sampled with planned clips.
        """
        source = self.resolve_source(source)
        duration = source.duration

        if duration is not None and duration < self.audio_config.min_media_duration:
            raise InsufficientSpeechError(
                f"{source.name} is too short for speech sampling "
                f"({duration:.1f}s < {self.audio_config.min_media_duration:.1f}s)"
            )

        if duration is None or duration <= self.audio_config.short_media_threshold:
            return [self.extract_speech(source, cancel_event=cancel_event)]
        return self.extract_clips(source, cancel_event=cancel_event)

    def extract_speech_with_cleanup(
        self,
        source: SourceMedia | Path | str,
        process: Callable[[Path], Any],
    ) -> Any:
        """Run ``process`` on the speech artifact, always deleting it afterwards."""
        result = self.extract_speech(source)
        try:
            return process(result.artifact)
        finally:
            self.temp_manager.cleanup(result.artifact)

    def release(self, result: ExtractionResult) -> Path:
        """Take ownership of a result's artifact away from the temp manager."""
        return self.temp_manager.release(result.artifact)

    def cleanup(self) -> int:
        """Delete every temporary artifact still owned by this sampler."""
        return self.temp_manager.cleanup_all()
