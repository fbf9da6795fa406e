"""
speechsampler.extract.planner - Clip position planning for long media.

Short media is sampled as one window from the start. Long media is sampled
at fixed fractions of the timeline ([0%, 25%, 50%, 75%, near end]) instead
of being scanned sequentially.
"""

from __future__ import annotations

import math

from speechsampler.config import AudioConfig
from speechsampler.logging import get_logger
from speechsampler.models import ClipPosition

logger = get_logger("extract.planner")

CLIP_FRACTIONS = (0.0, 0.25, 0.5, 0.75)

TIMEOUT_SCALE = 0.2
TIMEOUT_FLOOR = 30.0
TIMEOUT_CEILING = 60.0


def calculate_timeout(clip_duration: float) -> float:
    """Per-attempt timeout: clip_duration × 0.2 clamped to [30s, 60s]."""
    return min(TIMEOUT_CEILING, max(TIMEOUT_FLOOR, clip_duration * TIMEOUT_SCALE))


class ClipPlanner:
    """Plans sampling windows for a source of known duration.

    Planning is deterministic: identical inputs always yield identical plans.
    """

    def __init__(self, config: AudioConfig | None = None) -> None:
        self.config = config or AudioConfig()

    def candidate_starts(self, duration: float) -> list[float]:
        starts = [duration * fraction for fraction in CLIP_FRACTIONS]
        starts.append(max(0.0, duration - self.config.near_end_offset))
        return starts[: self.config.max_clips_per_video]

    def plan(self, duration: float | None) -> list[ClipPosition]:
        """Return time-ordered, non-overlapping windows within [0, duration].

        Zero, negative, unknown or non-finite durations yield an empty plan.
        """
        if duration is None or not math.isfinite(duration) or duration <= 0:
            logger.warning("Invalid duration %r; no clips planned", duration)
            return []

        config = self.config

        if duration <= config.short_media_threshold:
            clip_length = min(duration, config.max_total_audio_duration)
            logger.debug("Short media (%.1fs): single clip of %.1fs", duration, clip_length)
            return [ClipPosition(start_time=0.0, duration=clip_length, index=0)]

        clips: list[ClipPosition] = []
        planned = 0.0

        for index, start in enumerate(self.candidate_starts(duration)):
            if planned >= config.max_total_audio_duration:
                break

            if clips and start < clips[-1].end_time:
                continue

            remaining_media = duration - start
            remaining_budget = config.max_total_audio_duration - planned
            length = min(config.clip_duration_short, remaining_media, remaining_budget)

            if length < config.min_clip_duration or length <= 0:
                continue

            clips.append(ClipPosition(start_time=start, duration=length, index=index))
            planned += length

        logger.debug(
            "Long media (%.1fs): %d clips, %.1fs total",
            duration,
            len(clips),
            planned,
        )
        for clip in clips:
            logger.debug(
                "  clip %d: %.1fs - %.1fs (%.1fs)",
                clip.index,
                clip.start_time,
                clip.end_time,
                clip.duration,
            )
        return clips

    def timeout_for(self, clip: ClipPosition) -> float:
        return calculate_timeout(clip.duration)


def calculate_clip_positions(duration: float | None, config: AudioConfig | None = None) -> list[ClipPosition]:
    """Convenience wrapper around ``ClipPlanner(config).plan(duration)``."""
    return ClipPlanner(config).plan(duration)
