"""Compile keep segments into an ffmpeg -filter_complex graph.

For segments [(0, 3.5), (4.5, 10)] with a 0.08s fade the graph reads:

    [0:v]trim=start=0.000:end=3.500,setpts=PTS-STARTPTS,fade=t=out:st=3.420:d=0.080[v0];
    [0:a]atrim=start=0.000:end=3.500,asetpts=PTS-STARTPTS,afade=t=out:st=3.420:d=0.080[a0];
    [0:v]trim=start=4.500:end=10.000,setpts=PTS-STARTPTS,fade=t=in:st=0:d=0.080[v1];
    [0:a]atrim=start=4.500:end=10.000,asetpts=PTS-STARTPTS,afade=t=in:st=0:d=0.080[a1];
    [v0][a0][v1][a1]concat=n=2:v=1:a=1[outv][outa]
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .models import KeepSegment

DEFAULT_FADE_S = 0.08
VIDEO_OUT = "outv"
AUDIO_OUT = "outa"


@dataclass(frozen=True)
class FilterGraph:
    """A filter_complex description plus the pins the encode step must map."""
    description: str
    audio_label: str
    segment_count: int
    video_label: Optional[str] = None

    @property
    def output_labels(self) -> Tuple[str, ...]:
        """Pins to pass to -map, video first."""
        if self.video_label:
            return (f"[{self.video_label}]", f"[{self.audio_label}]")
        return (f"[{self.audio_label}]",)


def _ts(seconds: float) -> str:
    return f"{seconds:.3f}"


def _fades(kind: str, index: int, count: int, duration: float, fade: float) -> str:
    """Fade in on every segment but the first, fade out on every one but the last."""
    if fade <= 0:
        return ""
    parts = ""
    if index > 0:
        parts += f",{kind}=t=in:st=0:d={_ts(fade)}"
    if index < count - 1:
        parts += f",{kind}=t=out:st={_ts(max(0.0, duration - fade))}:d={_ts(fade)}"
    return parts


def build_filter_graph(
    segments: Sequence[KeepSegment],
    fade: float = DEFAULT_FADE_S,
    include_video: bool = True,
) -> FilterGraph:
    """
    Build the trim/fade/concat graph for ``segments`` in the given order.

    Each segment gets one trim per stream with timestamps reset to zero; all
    outputs feed a single concat filter.

    Args:
        segments: Planner output, at least one segment.
        fade: Fade duration at cut boundaries in seconds (0 disables).
        include_video: False for audio-only inputs (no video stream to trim).

    Raises:
        ValueError: If segments is empty (take the pass-through path instead).
    """
    if not segments:
        raise ValueError("Cannot build a filter graph without keep segments")

    count = len(segments)
    chains = []
    concat_inputs = ""

    for i, seg in enumerate(segments):
        window = f"start={_ts(seg.start)}:end={_ts(seg.end)}"
        if include_video:
            chains.append(
                f"[0:v]trim={window},setpts=PTS-STARTPTS"
                f"{_fades('fade', i, count, seg.duration, fade)}[v{i}]"
            )
            concat_inputs += f"[v{i}]"
        chains.append(
            f"[0:a]atrim={window},asetpts=PTS-STARTPTS"
            f"{_fades('afade', i, count, seg.duration, fade)}[a{i}]"
        )
        concat_inputs += f"[a{i}]"

    if include_video:
        chains.append(f"{concat_inputs}concat=n={count}:v=1:a=1[{VIDEO_OUT}][{AUDIO_OUT}]")
        return FilterGraph(
            description=";".join(chains),
            audio_label=AUDIO_OUT,
            segment_count=count,
            video_label=VIDEO_OUT,
        )

    chains.append(f"{concat_inputs}concat=n={count}:v=0:a=1[{AUDIO_OUT}]")
    return FilterGraph(description=";".join(chains), audio_label=AUDIO_OUT, segment_count=count)
