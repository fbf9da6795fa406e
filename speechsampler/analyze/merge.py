"""
speechsampler.analyze.merge - Gap merging and duration budgeting.

Collapses speech ranges separated by short pauses and truncates the list to
a total-duration budget. Entries that would overflow the budget are dropped
whole rather than trimmed.
"""

from __future__ import annotations

from collections.abc import Sequence

from speechsampler.models import TimeRange


def total_duration(segments: Sequence[TimeRange]) -> float:
    return sum(segment.duration for segment in segments)


def merge_segments(
    segments: Sequence[TimeRange],
    max_gap: float,
    max_total: float,
) -> list[TimeRange]:
    """Merge near-adjacent segments and keep the result within ``max_total``.

    Args:
        segments: Time-ordered speech segments
        max_gap: Largest pause (seconds) absorbed into a running segment
        max_total: Budget for the summed duration of the output

    Returns:
        Time-ordered merged segments whose total duration is <= max_total
    """
    if not segments:
        return []

    merged: list[TimeRange] = []
    current = segments[0]
    committed = 0.0

    for segment in segments[1:]:
        if committed >= max_total:
            break

        if segment.start - current.end <= max_gap:
            current = TimeRange(start=current.start, end=max(current.end, segment.end))
        else:
            if committed + current.duration <= max_total:
                merged.append(current)
                committed += current.duration
            current = segment

    if committed + current.duration <= max_total:
        merged.append(current)

    return merged
