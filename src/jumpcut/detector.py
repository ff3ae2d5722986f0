"""Silence detection and duration probing on top of ffmpeg diagnostics.

Both analyses run ffmpeg without producing an output file and read what it
prints to stderr:

    [silencedetect @ 0x5581] silence_start: 3.504
    [silencedetect @ 0x5581] silence_end: 5.012 | silence_duration: 1.508
      Duration: 00:01:23.45, start: 0.000000, bitrate: 1411 kb/s

The parsers are plain functions over lines of text so they can be fed canned
traces in tests.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from .errors import ToolInvocationError, TraceParseError
from .media_tool import MediaToolGateway
from .models import SilenceInterval

logger = logging.getLogger(__name__)

SILENCE_START_RE = re.compile(r"silence_start:\s*(\S+)")
SILENCE_END_RE = re.compile(r"silence_end:\s*([^\s|]+)")
DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")


def _parse_marker(value: str, marker: str, line_no: int) -> float:
    try:
        return float(value)
    except ValueError:
        raise TraceParseError(f"Malformed {marker} value {value!r} on trace line {line_no}")


def parse_silence_trace(
    lines: Iterable[str], min_duration: Optional[float] = None
) -> Iterator[SilenceInterval]:
    """
    Lazily turn silencedetect output into silence intervals.

    A silence_start opens a pending interval, the next silence_end closes it.
    An interval still open when the trace ends is yielded with end=None
    (silence runs to the end of the media).

    Args:
        lines: Diagnostic output, one line per item
        min_duration: Drop closed intervals shorter than this. Leave as None
            when ffmpeg already applied the threshold (d=...).

    Raises:
        TraceParseError: A marker value is not a number, or an end precedes
            its start.
    """
    pending: Optional[float] = None

    for line_no, line in enumerate(lines, start=1):
        match = SILENCE_START_RE.search(line)
        if match:
            # ffmpeg reports slightly negative starts for silence at t=0
            pending = max(0.0, _parse_marker(match.group(1), "silence_start", line_no))
            continue

        match = SILENCE_END_RE.search(line)
        if match and pending is not None:
            end = _parse_marker(match.group(1), "silence_end", line_no)
            if end < pending:
                raise TraceParseError(
                    f"silence_end {end} precedes silence_start {pending} on trace line {line_no}"
                )
            if min_duration is None or end - pending >= min_duration:
                yield SilenceInterval(start=pending, end=end)
            pending = None

    if pending is not None:
        yield SilenceInterval(start=pending, end=None)


def parse_duration(lines: Iterable[str]) -> float:
    """
    Extract total media duration from ffmpeg's input banner.

    Raises:
        TraceParseError: No parsable Duration line (e.g. "Duration: N/A").
    """
    for line in lines:
        match = DURATION_RE.search(line)
        if match:
            h, m, s = match.groups()
            return int(h) * 3600 + int(m) * 60 + float(s)
    raise TraceParseError("Duration not found in ffmpeg output")


class SilenceDetector:
    """Runs silencedetect over a media file."""

    def __init__(self, gateway: MediaToolGateway):
        self.gateway = gateway

    @staticmethod
    def build_args(
        media_path: Union[str, Path], noise_floor_db: float, min_silence_s: float
    ) -> List[str]:
        return [
            "-hide_banner",
            "-nostats",
            "-i", str(media_path),
            "-vn",
            "-af", f"silencedetect=noise={noise_floor_db}dB:d={min_silence_s}",
            "-f", "null",
            "-",
        ]

    async def detect(
        self, media_path: Union[str, Path], noise_floor_db: float, min_silence_s: float
    ) -> List[SilenceInterval]:
        """
        Detect silences at least ``min_silence_s`` long below ``noise_floor_db``.

        The duration threshold is enforced by ffmpeg (d=...), so closed
        intervals from the trace are accepted as-is.

        Raises:
            ToolInvocationError: ffmpeg could not start or exited non-zero
            TraceParseError: Malformed markers in the trace
        """
        result = await self.gateway.run(self.build_args(media_path, noise_floor_db, min_silence_s))
        silences = list(parse_silence_trace(result.lines()))
        logger.debug("Found %d silences in %s", len(silences), media_path)
        return silences


class DurationProbe:
    """Reads total duration from the banner ffmpeg prints for its input."""

    def __init__(self, gateway: MediaToolGateway):
        self.gateway = gateway

    async def probe(self, media_path: Union[str, Path]) -> float:
        """
        Total duration of ``media_path`` in seconds.

        ffmpeg exits non-zero here ("At least one output file must be
        specified"); only the banner matters.

        Raises:
            TraceParseError: ffmpeg could not run or printed no duration.
                Never falls back to zero.
        """
        try:
            result = await self.gateway.run(["-hide_banner", "-i", str(media_path)], check=False)
        except ToolInvocationError as e:
            raise TraceParseError(f"Duration probe failed for {media_path}: {e}") from e

        try:
            return parse_duration(result.lines())
        except TraceParseError as e:
            raise TraceParseError(f"{e} for {media_path}") from e
