import errno
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from jumpcut.api.schemas import FileStatus, JobStatusResponse, UploadAccepted
from jumpcut.config import resolve_config
from jumpcut.errors import StorageError
from jumpcut.models import Job, JumpcutConfig
from jumpcut.service import JumpcutService

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1 MB per read

JOB_EXPIRED = {"code": "JOB_EXPIRED", "message": "This job has expired."}

router = APIRouter()


def _service(request: Request) -> JumpcutService:
    return request.app.state.service


def _job_or_404(request: Request, job_id: str) -> Job:
    job = _service(request).registry.get(job_id)
    if job is None or job.expired:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=JOB_EXPIRED)
    return job


def _download_url(job: Job, output_name: str) -> str:
    return f"/download/{job.id}/{quote(output_name)}"


def _job_to_response(job: Job) -> JobStatusResponse:
    return JobStatusResponse(
        id=job.id,
        status=job.status,
        createdAt=job.created_at,
        expiresAt=job.expires_at,
        error=job.error,
        files=[
            FileStatus(
                name=f.original_name,
                status=f.status,
                outputName=f.output_name,
                downloadUrl=_download_url(job, f.output_name) if f.output_name else None,
                error=f.error,
            )
            for f in job.files
        ],
    )


def _too_large(max_bytes: int, name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail={
            "code": "FILE_TOO_LARGE",
            "message": f"{name} exceeds the {max_bytes} byte limit.",
        },
    )


async def _save_upload(upload: UploadFile, dest: Path, max_bytes: int, name: str) -> int:
    """Stream an upload to disk, enforcing the per-file ceiling as bytes arrive."""
    size = getattr(upload, "size", None)
    if size is not None and size > max_bytes:
        raise _too_large(max_bytes, name)

    total = 0
    with dest.open("wb") as f:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            total += len(chunk)
            if total > max_bytes:
                raise _too_large(max_bytes, name)
            f.write(chunk)
    return total


@router.get("/")
async def root():
    return {"message": "jumpcut silence removal API", "docs": "/docs", "health": "/health"}


@router.get("/health")
async def health_check(request: Request):
    scheduler = _service(request).scheduler
    return {
        "status": "ok",
        "activeJobs": scheduler.active_count,
        "queuedJobs": scheduler.pending_count,
    }


@router.get("/config/defaults")
async def get_config_defaults(request: Request):
    return _service(request).config.model_dump()


@router.post("/upload", response_model=UploadAccepted, status_code=status.HTTP_202_ACCEPTED)
async def upload_files(request: Request, files: Optional[List[UploadFile]] = File(default=None)):
    """
    Create a job from one or more uploaded media files and queue it.

    Files are streamed to ``<jobs_dir>/<id>/uploads``. If anything goes wrong
    before the job is queued, the job and its folder are discarded.
    """
    service = _service(request)
    limits = service.config.queue

    if not files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "NO_FILES", "message": "No files uploaded."},
        )
    if len(files) > limits.max_files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "TOO_MANY_FILES",
                "message": f"At most {limits.max_files} files per upload.",
            },
        )

    try:
        job = service.registry.create_job()
    except StorageError as e:
        logger.error("Could not create job: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to create job: {e!s}") from e

    try:
        for upload in files:
            name = Path(upload.filename or "").name
            if not name:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"code": "NO_FILES", "message": "Uploaded file has no name."},
                )
            dest = service.registry.upload_path(job, name)
            size = await _save_upload(upload, dest, limits.max_file_size_bytes, name)
            service.registry.add_file(job, name, dest)
            logger.info("Job %s: stored %s (%d bytes)", job.id, name, size)
    except HTTPException:
        service.registry.discard(job.id)
        raise
    except OSError as e:
        service.registry.discard(job.id)
        if e.errno == errno.ENOSPC:
            raise HTTPException(
                status_code=507, detail="Server ran out of disk space while saving the upload."
            ) from e
        raise HTTPException(status_code=500, detail=f"Failed to save file: {e!s}") from e

    service.scheduler.submit(job)

    return UploadAccepted(jobId=job.id, status=job.status, statusUrl=f"/status/{job.id}")


@router.get("/status/{job_id}", response_model=JobStatusResponse)
async def get_job_status(request: Request, job_id: str):
    return _job_to_response(_job_or_404(request, job_id))


@router.get("/download/{job_id}/{file_name}")
async def download_file(request: Request, job_id: str, file_name: str):
    """Send a rendered output. Only names recorded as outputs of the job are served."""
    job = _job_or_404(request, job_id)

    outputs = {f.output_name for f in job.files if f.output_name}
    path = job.output_dir / file_name
    if file_name not in outputs or not path.is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "FILE_NOT_FOUND", "message": "File not found."},
        )
    return FileResponse(path, filename=file_name)


def create_app(
    config: Optional[JumpcutConfig] = None, service: Optional[JumpcutService] = None
) -> FastAPI:
    """Build the FastAPI app. The service is created from resolved config if not given."""
    if service is None:
        service = JumpcutService(config or resolve_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.start()
        yield
        await service.stop()

    app = FastAPI(title="jumpcut", lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # For dev
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app
