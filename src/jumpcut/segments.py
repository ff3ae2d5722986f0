from typing import Iterable, List

from .models import KeepSegment, SilenceInterval


def plan_keep_segments(
    silences: Iterable[SilenceInterval],
    total_duration: float,
    pre_buffer: float,
    post_buffer: float,
    min_keep: float,
) -> List[KeepSegment]:
    """
    Turn detected silences into the ranges of media to keep.

    Walks the silences in start order with a cursor marking where the next
    kept range begins:
    1. The speech before a silence is kept up to ``silence.start + post_buffer``
       so words are not clipped.
    2. The next range starts at ``silence.end - pre_buffer`` (end of media for
       an open-ended silence), so the cursor never moves backwards.
    3. A silence narrower than the two buffers is not cut at all.
    4. Ranges shorter than ``min_keep`` are dropped.

    No silences gives an empty list: there is nothing to cut and the caller
    should skip the filter graph. A silence covering the whole file also gives
    an empty list.

    Args:
        silences: Detected silence intervals (any order).
        total_duration: Media duration in seconds.
        pre_buffer: Seconds kept before speech resumes.
        post_buffer: Seconds kept after speech stops.
        min_keep: Minimum length of an emitted range.

    Returns:
        Ordered, non-overlapping keep segments within [0, total_duration].
    """
    ordered = sorted(silences, key=lambda s: s.start)
    if not ordered:
        return []

    keeps: List[KeepSegment] = []
    cursor = 0.0
    # End of the latest silence seen; media after it is non-silent
    speech_from = 0.0

    for silence in ordered:
        silence_end = total_duration if silence.end is None else min(silence.end, total_duration)
        cut_start = min(silence.start + post_buffer, total_duration)
        cut_end = silence_end - pre_buffer

        if cut_end <= cut_start:
            continue

        has_speech = silence.start > speech_from
        if has_speech and cut_start > cursor and cut_start - cursor >= min_keep:
            keeps.append(KeepSegment(start=cursor, end=cut_start))

        cursor = max(cursor, cut_end)
        speech_from = max(speech_from, silence_end)

    if speech_from < total_duration and total_duration > cursor and total_duration - cursor >= min_keep:
        keeps.append(KeepSegment(start=cursor, end=total_duration))

    return keeps


def apply_open_silence_policy(
    silences: Iterable[SilenceInterval], policy: str
) -> List[SilenceInterval]:
    """
    Resolve silences that never closed before the trace ended.

    "cut_to_end" keeps them (the planner cuts through to the end of media),
    "keep" drops them so the trailing audio survives.
    """
    if policy == "cut_to_end":
        return list(silences)
    if policy == "keep":
        return [s for s in silences if s.end is not None]
    raise ValueError(f"Unknown open silence policy: {policy!r}")


def total_kept(segments: Iterable[KeepSegment]) -> float:
    """Sum of segment durations."""
    return sum(s.duration for s in segments)
