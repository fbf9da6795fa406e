"""
speechsampler.analyze.segmenter - Speech/silence state machine.

Consumes smoothed loudness frames and emits the time ranges believed to
contain speech. A single threshold is used both to enter and to leave the
speech state; segments shorter than the minimum duration are dropped as
noise. Scanning stops once enough speech has been collected or the maximum
scan duration is reached.
"""

from __future__ import annotations

from collections.abc import Iterable

from speechsampler.analyze.energy import EnergyFrame
from speechsampler.config import SamplerConfig
from speechsampler.logging import get_logger
from speechsampler.models import TimeRange

logger = get_logger("analyze.segmenter")

SILENCE = "silence"
IN_SPEECH = "in-speech"


class SpeechSegmenter:
    """Hysteresis speech detector over a smoothed energy stream."""

    def __init__(
        self,
        threshold: float,
        min_segment_duration: float,
        target_speech_duration: float,
        max_scan_duration: float,
    ) -> None:
        self.threshold = threshold
        self.min_segment_duration = min_segment_duration
        self.target_speech_duration = target_speech_duration
        self.max_scan_duration = max_scan_duration

        self.state = SILENCE
        self.segments: list[TimeRange] = []
        self.speech_duration = 0.0
        self.current_time = 0.0
        self._segment_start = 0.0

    @classmethod
    def from_config(cls, config: SamplerConfig) -> SpeechSegmenter:
        return cls(
            threshold=config.speech_energy_threshold,
            min_segment_duration=config.min_segment_duration,
            target_speech_duration=config.target_speech_duration,
            max_scan_duration=config.max_scan_duration,
        )

    @property
    def done(self) -> bool:
        """True once a resource budget has been reached."""
        return (
            self.speech_duration >= self.target_speech_duration
            or self.current_time >= self.max_scan_duration
        )

    def feed(self, frame: EnergyFrame) -> TimeRange | None:
        """Advance the state machine by one frame.

        Returns the segment closed by this frame, if one was emitted.
        """
        is_speech = frame.smoothed > self.threshold
        emitted = None

        if is_speech and self.state == SILENCE:
            self.state = IN_SPEECH
            self._segment_start = frame.start
        elif not is_speech and self.state == IN_SPEECH:
            self.state = SILENCE
            emitted = self._close(frame.start)
            if emitted is not None:
                self.speech_duration += emitted.duration

        self.current_time = frame.end
        return emitted

    def finish(self) -> TimeRange | None:
        """Close a segment left open at end of stream."""
        if self.state != IN_SPEECH:
            return None
        self.state = SILENCE
        return self._close(self.current_time)

    def _close(self, end: float) -> TimeRange | None:
        segment = TimeRange(start=self._segment_start, end=end)
        if segment.duration >= self.min_segment_duration:
            self.segments.append(segment)
            return segment
        logger.debug(
            "Dropped %.2fs blip at %.2fs (min %.2fs)",
            segment.duration,
            segment.start,
            self.min_segment_duration,
        )
        return None

    def run(self, frames: Iterable[EnergyFrame]) -> list[TimeRange]:
        """Consume frames until the stream ends or a budget is reached."""
        iterator = iter(frames)
        while not self.done:
            frame = next(iterator, None)
            if frame is None:
                break
            self.feed(frame)
        self.finish()
        logger.debug(
            "Segmented %d speech ranges (%.1fs speech, %.1fs scanned)",
            len(self.segments),
            sum(s.duration for s in self.segments),
            self.current_time,
        )
        return list(self.segments)


def detect_speech(frames: Iterable[EnergyFrame], config: SamplerConfig) -> list[TimeRange]:
    """Run a fresh segmenter over ``frames`` with ``config``."""
    return SpeechSegmenter.from_config(config).run(frames)
