from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from jumpcut.models import JobStatus


class UploadAccepted(BaseModel):
    jobId: str  # noqa: N815
    status: JobStatus
    statusUrl: str  # noqa: N815


class FileStatus(BaseModel):
    name: str
    status: JobStatus
    outputName: Optional[str] = None  # noqa: N815
    downloadUrl: Optional[str] = None  # noqa: N815
    error: Optional[str] = None


class JobStatusResponse(BaseModel):
    id: str
    status: JobStatus
    createdAt: datetime  # noqa: N815
    expiresAt: datetime  # noqa: N815
    error: Optional[str] = None
    files: List[FileStatus] = []
