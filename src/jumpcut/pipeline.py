"""Per-file silence removal: probe, detect, plan, compile, encode."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .detector import DurationProbe, SilenceDetector
from .errors import EmptyResultError, StorageError
from .filtergraph import build_filter_graph
from .media_tool import MediaToolGateway
from .models import FileTask, Job, JumpcutConfig, KeepSegment, SilenceInterval
from .renderer import (
    build_cut_args,
    build_passthrough_args,
    is_audio_only,
    output_name_for,
    unique_output_name,
)
from .segments import apply_open_silence_policy, plan_keep_segments, total_kept

logger = logging.getLogger(__name__)


@dataclass
class RenderOutcome:
    """What one render produced."""
    output_name: str
    output_path: Path
    source_duration_s: float
    silences: List[SilenceInterval] = field(default_factory=list)
    segments: List[KeepSegment] = field(default_factory=list)

    @property
    def was_cut(self) -> bool:
        return bool(self.segments)

    @property
    def kept_duration_s(self) -> float:
        return total_kept(self.segments) if self.segments else self.source_duration_s


class SilenceRemovalPipeline:
    """Turns one input file into one output file with its silences removed.

    Files with no detected silences skip the filter graph and are re-encoded
    as-is with the same codec settings, so outputs are uniform either way.
    """

    def __init__(self, config: JumpcutConfig, gateway: Optional[MediaToolGateway] = None):
        self.config = config
        self.gateway = gateway or MediaToolGateway.from_config(config.media)
        self.detector = SilenceDetector(self.gateway)
        self.probe = DurationProbe(self.gateway)

    async def render(
        self,
        input_path: Path,
        output_dir: Path,
        original_name: Optional[str] = None,
        output_name: Optional[str] = None,
    ) -> RenderOutcome:
        """
        Remove silences from ``input_path`` and write the result into ``output_dir``.

        ``output_name`` defaults to the name derived from ``original_name``;
        an existing file of that name is overwritten.

        Raises:
            StorageError: Input or output directory missing
            TraceParseError: Duration or silence trace could not be parsed
            ToolInvocationError: ffmpeg failed
            EmptyResultError: Nothing but silence to keep
        """
        input_path = Path(input_path)
        output_dir = Path(output_dir)
        name = original_name or input_path.name

        if not input_path.is_file():
            raise StorageError(f"Input file not found: {input_path}")
        if not output_dir.is_dir():
            raise StorageError(f"Output directory not found: {output_dir}")

        detection = self.config.detection
        planning = self.config.planning
        rendering = self.config.rendering
        loglevel = self.config.media.loglevel
        audio_only = is_audio_only(name)
        output_name = output_name or output_name_for(name)
        output_path = output_dir / output_name

        duration = await self.probe.probe(input_path)
        silences = await self.detector.detect(
            input_path, detection.noise_floor_db, detection.min_silence_s
        )
        silences = apply_open_silence_policy(silences, detection.open_silence)

        segments: List[KeepSegment] = []
        if not silences:
            logger.info("No silences in %s, re-encoding without cuts", name)
            args = build_passthrough_args(
                input_path, output_path, rendering, audio_only=audio_only, loglevel=loglevel
            )
        else:
            segments = plan_keep_segments(
                silences,
                duration,
                pre_buffer=planning.pre_buffer_s,
                post_buffer=planning.post_buffer_s,
                min_keep=planning.min_keep_s,
            )
            if not segments:
                raise EmptyResultError(name)
            graph = build_filter_graph(
                segments, fade=rendering.fade_s, include_video=not audio_only
            )
            args = build_cut_args(input_path, output_path, graph, rendering, loglevel=loglevel)

        await self.gateway.run(args)

        if not output_path.is_file():
            raise StorageError(f"ffmpeg finished but {output_path} does not exist")

        outcome = RenderOutcome(
            output_name=output_name,
            output_path=output_path,
            source_duration_s=duration,
            silences=silences,
            segments=segments,
        )
        logger.info(
            "Rendered %s: kept %.2fs of %.2fs (%d silences, %d segments)",
            name,
            outcome.kept_duration_s,
            duration,
            len(silences),
            len(segments),
        )
        return outcome

    async def process_file(self, job: Job, file: FileTask) -> None:
        """
        Render one file of a job, then delete its upload.

        The output name is unique within the job folder, so uploads sharing a
        stem ("clip.mov", "clip.mp4") never overwrite each other. Sets
        ``file.output_name`` on success; status transitions belong to the
        scheduler.

        Raises:
            StorageError: The job expired, or its files vanished mid-flight
            JumpcutError: Any render failure (see render())
        """
        if job.expired:
            raise StorageError(f"Job {job.id} expired before {file.original_name} was processed")

        taken = [f.output_name for f in job.files if f.output_name]
        output_name = unique_output_name(file.original_name, job.output_dir, taken)
        outcome = await self.render(
            file.input_path, job.output_dir, file.original_name, output_name=output_name
        )

        try:
            Path(file.input_path).unlink()
        except OSError as e:
            raise StorageError(f"Could not remove upload {file.input_path}: {e}") from e

        file.output_name = outcome.output_name
