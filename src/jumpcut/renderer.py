"""Encode argument lists and output naming.

Both render paths re-encode with the same codec settings, so every output
of a given media kind has the same container and codecs:
- cut path: -filter_complex graph with mapped output pins
- pass-through path (nothing to cut): straight re-encode of the input
"""

from pathlib import Path
from typing import Iterable, List, Union

from .filtergraph import FilterGraph
from .models import RenderingConfig

AUDIO_EXTENSIONS = {".mp3", ".wav", ".aac", ".m4a", ".ogg", ".flac", ".opus"}
VIDEO_CONTAINER = ".mp4"
AUDIO_CONTAINER = ".m4a"
OUTPUT_SUFFIX = " finished"


def is_audio_only(file_name: str) -> bool:
    """Guess from the extension whether the upload has no video stream."""
    return Path(file_name).suffix.lower() in AUDIO_EXTENSIONS


def output_name_for(original_name: str) -> str:
    """
    Output file name for an upload.

    "talk.MOV" -> "talk finished.mp4", "memo.wav" -> "memo finished.m4a".
    """
    stem = Path(original_name).stem or "output"
    container = AUDIO_CONTAINER if is_audio_only(original_name) else VIDEO_CONTAINER
    return f"{stem}{OUTPUT_SUFFIX}{container}"


def unique_output_name(
    original_name: str, output_dir: Union[str, Path], taken: Iterable[str] = ()
) -> str:
    """
    Output name that collides with nothing in ``output_dir`` or ``taken``.

    "clip.mov" then "clip.mp4" in one job -> "clip finished.mp4", "clip finished-1.mp4".
    """
    name = output_name_for(original_name)
    stem, suffix = Path(name).stem, Path(name).suffix
    reserved = set(taken)
    candidate = name
    counter = 1
    while candidate in reserved or (Path(output_dir) / candidate).exists():
        candidate = f"{stem}-{counter}{suffix}"
        counter += 1
    return candidate


def _codec_args(rendering: RenderingConfig, audio_only: bool) -> List[str]:
    args = []
    if not audio_only:
        args.extend([
            "-c:v", rendering.video_codec,
            "-preset", rendering.preset,
            "-crf", str(rendering.crf),
        ])
    args.extend([
        "-c:a", rendering.audio_codec,
        "-b:a", rendering.audio_bitrate,
    ])
    if rendering.faststart:
        args.extend(["-movflags", "+faststart"])
    return args


def build_cut_args(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    graph: FilterGraph,
    rendering: RenderingConfig,
    loglevel: str = "info",
) -> List[str]:
    """Arguments that render ``graph`` from ``input_path`` into ``output_path``."""
    args = [
        "-hide_banner",
        "-nostats",
        "-loglevel", loglevel,
        "-y",
        "-i", str(input_path),
        "-filter_complex", graph.description,
    ]
    for label in graph.output_labels:
        args.extend(["-map", label])
    args.extend(_codec_args(rendering, audio_only=graph.video_label is None))
    args.append(str(output_path))
    return args


def build_passthrough_args(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    rendering: RenderingConfig,
    audio_only: bool = False,
    loglevel: str = "info",
) -> List[str]:
    """Arguments for a straight re-encode when there is nothing to cut."""
    args = [
        "-hide_banner",
        "-nostats",
        "-loglevel", loglevel,
        "-y",
        "-i", str(input_path),
    ]
    if audio_only:
        args.append("-vn")
    args.extend(_codec_args(rendering, audio_only=audio_only))
    args.append(str(output_path))
    return args
