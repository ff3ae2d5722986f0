"""Pydantic models for configuration, timeline data and job state."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Configuration
# ============================================================================


class DetectionConfig(BaseModel):
    """Silence detection parameters passed to ffmpeg's silencedetect filter."""

    noise_floor_db: float = Field(
        default=-35.0, le=0.0, description="Audio below this level (dBFS) counts as silence"
    )
    min_silence_s: float = Field(
        default=0.6, gt=0.0, description="Minimum silence duration in seconds"
    )
    open_silence: Literal["cut_to_end", "keep"] = Field(
        default="cut_to_end",
        description="Silence still open at end of media: cut it to the end, or keep the tail",
    )


class PlanningConfig(BaseModel):
    """Keep-segment planning parameters."""

    pre_buffer_s: float = Field(
        default=0.3, ge=0.0, description="Audio kept before speech resumes after a silence"
    )
    post_buffer_s: float = Field(
        default=0.3, ge=0.0, description="Audio kept after speech ends before a silence"
    )
    min_keep_s: float = Field(
        default=0.2, ge=0.0, description="Keep segments shorter than this are dropped"
    )


class RenderingConfig(BaseModel):
    """Encode settings shared by the filter graph path and the pass-through path."""

    fade_s: float = Field(
        default=0.08, ge=0.0, description="Fade applied at each cut boundary (0 disables)"
    )
    video_codec: str = Field(default="libx264", description="Video codec name")
    preset: Literal[
        "ultrafast",
        "superfast",
        "veryfast",
        "faster",
        "fast",
        "medium",
        "slow",
        "slower",
        "veryslow",
    ] = Field(default="veryfast", description="Encoding speed preset")
    crf: int = Field(default=23, ge=0, le=51, description="Constant Rate Factor (lower = better)")
    audio_codec: str = Field(default="aac", description="Audio codec name")
    audio_bitrate: str = Field(default="128k", description="Audio bitrate (e.g. '128k')")
    faststart: bool = Field(default=True, description="Move the moov atom up front for streaming")


class MediaToolConfig(BaseModel):
    """How the ffmpeg executable is located and run."""

    ffmpeg_path: Optional[str] = Field(
        default=None, description="ffmpeg executable (None = bundled imageio-ffmpeg binary)"
    )
    loglevel: str = Field(default="info", description="ffmpeg log level for encode runs")
    max_tool_processes: Optional[int] = Field(
        default=None, gt=0, description="Cap on concurrently running ffmpeg processes"
    )
    timeout_s: Optional[float] = Field(
        default=None, gt=0.0, description="Kill a tool run after this many seconds (None = no limit)"
    )
    save_artifacts_on_failure: bool = Field(
        default=False, description="Write a log and a reproducible command script on failure"
    )
    artifacts_dir: Optional[str] = Field(
        default=None, description="Where failure artifacts go (None = system temp dir)"
    )


class QueueConfig(BaseModel):
    """Job admission, upload limits and on-disk lifetime."""

    max_concurrent_jobs: int = Field(
        default=2, gt=0, description="Maximum number of jobs processing at once"
    )
    job_ttl_s: float = Field(
        default=24 * 60 * 60, gt=0.0, description="Seconds from creation until a job is removed"
    )
    max_files: int = Field(default=10, gt=0, description="Maximum files per upload")
    max_file_size_bytes: int = Field(
        default=1024 * 1024 * 1024, gt=0, description="Per-file upload ceiling in bytes"
    )
    jobs_dir: str = Field(default="jobs", description="Root directory for per-job folders")


class LoggingConfig(BaseModel):
    """Log output settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Root log level"
    )


class JumpcutConfig(BaseModel):
    """Complete application configuration with validation."""

    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    planning: PlanningConfig = Field(default_factory=PlanningConfig)
    rendering: RenderingConfig = Field(default_factory=RenderingConfig)
    media: MediaToolConfig = Field(default_factory=MediaToolConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "JumpcutConfig":
        """Create config from nested dict (YAML)."""
        return cls(**data)


# ============================================================================
# Timeline
# ============================================================================


class SilenceInterval(BaseModel):
    """A stretch of audio below the noise floor.

    ``end`` is None when the silence was still open when the trace ended,
    i.e. it runs to the end of the media.
    """

    model_config = ConfigDict(frozen=True)

    start: float = Field(ge=0.0, description="Silence start in seconds")
    end: Optional[float] = Field(default=None, description="Silence end in seconds, None = end of media")

    @field_validator("end")
    @classmethod
    def end_not_before_start(cls, v: Optional[float], info) -> Optional[float]:
        if v is not None and "start" in info.data and v < info.data["start"]:
            raise ValueError(f"end ({v}) must be >= start ({info.data['start']})")
        return v


class KeepSegment(BaseModel):
    """Time range of the source retained in the output."""

    model_config = ConfigDict(frozen=True)

    start: float = Field(ge=0.0, description="Start time in seconds")
    end: float = Field(gt=0.0, description="End time in seconds")

    @field_validator("end")
    @classmethod
    def end_after_start(cls, v: float, info) -> float:
        """Validate that end time is after start time."""
        if "start" in info.data and v <= info.data["start"]:
            raise ValueError(f"end ({v}) must be > start ({info.data['start']})")
        return v

    @property
    def duration(self) -> float:
        return self.end - self.start


# ============================================================================
# Jobs
# ============================================================================


class JobStatus(str, Enum):
    """Processing states shared by jobs and their files.

    State transitions:
        QUEUED → PROCESSING   (scheduler admits the job / reaches the file)
        PROCESSING → DONE     (all files rendered / file rendered)
        PROCESSING → ERROR    (first unrecovered failure, no retry)
    """

    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    ERROR = "ERROR"


class FileTask(BaseModel):
    """One uploaded file within a job."""

    original_name: str = Field(..., description="File name as uploaded")
    input_path: Path = Field(..., description="Where the upload was stored")
    output_name: Optional[str] = Field(default=None, description="Rendered file name, set on success")
    status: JobStatus = Field(default=JobStatus.QUEUED)
    error: Optional[str] = Field(default=None, description="Failure description (truncated)")


class Job(BaseModel):
    """An upload batch sharing one lifecycle and expiry."""

    id: str = Field(..., description="Unique job identifier (UUID hex)")
    status: JobStatus = Field(default=JobStatus.QUEUED)
    files: List[FileTask] = Field(default_factory=list)
    job_dir: Path = Field(..., description="Root folder removed on expiry")
    upload_dir: Path
    output_dir: Path
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    ttl_s: float = Field(default=24 * 60 * 60, gt=0.0)
    error: Optional[str] = Field(default=None, description="First failure that stopped the job")
    expired: bool = Field(default=False, description="Set once the TTL fired and the folder is gone")

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(seconds=self.ttl_s)
