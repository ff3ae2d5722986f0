"""Tests for the upload / status / download endpoints."""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from jumpcut.api.main import create_app
from jumpcut.models import JobStatus, JumpcutConfig
from jumpcut.service import JumpcutService


def _upload(*names, content=b"fake media bytes"):
    return [("files", (name, content, "application/octet-stream")) for name in names]


@pytest.mark.asyncio(loop_scope="function")
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio(loop_scope="function")
async def test_config_defaults(client: AsyncClient):
    response = await client.get("/config/defaults")
    assert response.status_code == 200
    data = response.json()
    assert data["detection"]["noise_floor_db"] == -35.0
    assert data["queue"]["max_concurrent_jobs"] == 2


@pytest.mark.asyncio(loop_scope="function")
async def test_upload_process_download(client: AsyncClient, service):
    """Uploaded files are processed and served under their output names."""
    response = await client.post("/upload", files=_upload("talk.mp4", "memo.wav"))
    assert response.status_code == 202
    body = response.json()
    job_id = body["jobId"]
    assert body["status"] == "QUEUED"
    assert body["statusUrl"] == f"/status/{job_id}"

    await service.scheduler.join()

    status = (await client.get(f"/status/{job_id}")).json()
    assert status["id"] == job_id
    assert status["status"] == "DONE"
    assert status["error"] is None
    assert [f["name"] for f in status["files"]] == ["talk.mp4", "memo.wav"]
    assert [f["outputName"] for f in status["files"]] == ["talk finished.mp4", "memo finished.m4a"]
    assert status["createdAt"] < status["expiresAt"]

    download = await client.get(status["files"][0]["downloadUrl"])
    assert download.status_code == 200
    assert download.content == b"rendered media"

    job = service.registry.get(job_id)
    assert list(job.upload_dir.iterdir()) == []


@pytest.mark.asyncio(loop_scope="function")
async def test_same_stem_uploads_get_distinct_outputs(client: AsyncClient, service):
    """clip.mov and clip.mp4 in one job must not overwrite each other's output."""
    response = await client.post("/upload", files=_upload("clip.mov", "clip.mp4"))
    job_id = response.json()["jobId"]
    await service.scheduler.join()

    status = (await client.get(f"/status/{job_id}")).json()
    assert status["status"] == "DONE"
    assert [f["outputName"] for f in status["files"]] == [
        "clip finished.mp4",
        "clip finished-1.mp4",
    ]
    urls = [f["downloadUrl"] for f in status["files"]]
    assert urls[0] != urls[1]

    for url in urls:
        download = await client.get(url)
        assert download.status_code == 200

    job = service.registry.get(job_id)
    assert sorted(p.name for p in job.output_dir.iterdir()) == [
        "clip finished-1.mp4",
        "clip finished.mp4",
    ]


@pytest.mark.asyncio(loop_scope="function")
async def test_upload_without_files_returns_400(client: AsyncClient, service):
    response = await client.post("/upload", data={"note": "nothing attached"})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "NO_FILES"
    assert len(service.registry) == 0


@pytest.mark.asyncio(loop_scope="function")
async def test_upload_too_many_files_returns_400(client: AsyncClient, service):
    names = [f"clip{i}.mp4" for i in range(service.config.queue.max_files + 1)]
    response = await client.post("/upload", files=_upload(*names))
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "TOO_MANY_FILES"
    assert len(service.registry) == 0


@pytest.mark.asyncio(loop_scope="function")
async def test_oversize_upload_returns_413_and_discards_job(tmp_path, fake_gateway):
    """An oversize file rejects the whole upload and leaves nothing behind."""
    config = JumpcutConfig(
        queue={"jobs_dir": str(tmp_path / "jobs"), "max_file_size_bytes": 16}
    )
    service = JumpcutService(config, gateway=fake_gateway)
    await service.start()
    try:
        transport = ASGITransport(app=create_app(service=service))
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post(
                "/upload",
                files=_upload("small.mp4", content=b"ok")
                + _upload("huge.mp4", content=b"x" * 64),
            )
    finally:
        await service.stop()

    assert response.status_code == 413
    assert response.json()["detail"]["code"] == "FILE_TOO_LARGE"
    assert len(service.registry) == 0
    assert list((tmp_path / "jobs").iterdir()) == []


@pytest.mark.asyncio(loop_scope="function")
async def test_status_unknown_job_is_expired(client: AsyncClient):
    response = await client.get("/status/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {
        "detail": {"code": "JOB_EXPIRED", "message": "This job has expired."}
    }


@pytest.mark.asyncio(loop_scope="function")
async def test_status_after_expiry_is_404(client: AsyncClient, service):
    response = await client.post("/upload", files=_upload("talk.mp4"))
    job_id = response.json()["jobId"]
    await service.scheduler.join()
    job_dir = service.registry.get(job_id).job_dir

    service.registry.expire(job_id)

    response = await client.get(f"/status/{job_id}")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "JOB_EXPIRED"
    assert not job_dir.exists()

    download = await client.get(f"/download/{job_id}/talk%20finished.mp4")
    assert download.status_code == 404
    assert download.json()["detail"]["code"] == "JOB_EXPIRED"


@pytest.mark.asyncio(loop_scope="function")
async def test_download_unknown_file_is_404(client: AsyncClient, service):
    response = await client.post("/upload", files=_upload("talk.mp4"))
    job_id = response.json()["jobId"]
    await service.scheduler.join()

    response = await client.get(f"/download/{job_id}/passwd")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "FILE_NOT_FOUND"


@pytest.mark.asyncio(loop_scope="function")
async def test_failed_render_reports_error(client: AsyncClient, service, fake_gateway):
    fake_gateway.fail_encode = True
    response = await client.post("/upload", files=_upload("talk.mp4"))
    job_id = response.json()["jobId"]
    await service.scheduler.join()

    status = (await client.get(f"/status/{job_id}")).json()
    assert status["status"] == "ERROR"
    assert "ToolInvocationError" in status["error"]
    assert status["files"][0]["status"] == "ERROR"
    assert status["files"][0]["downloadUrl"] is None


@pytest.mark.asyncio(loop_scope="function")
async def test_job_expiring_mid_processing_ends_in_error(client: AsyncClient, service, fake_gateway):
    """Expiry while a file is encoding fails the job instead of crashing the scheduler."""
    fake_gateway.encode_delay = 0.1
    response = await client.post("/upload", files=_upload("one.mp4", "two.mp4"))
    job_id = response.json()["jobId"]
    job = service.registry.get(job_id)

    await asyncio.sleep(0.03)
    assert job.status == JobStatus.PROCESSING
    service.registry.expire(job_id)
    await service.scheduler.join()

    assert job.expired
    assert job.status == JobStatus.ERROR
    assert job.files[1].status == JobStatus.QUEUED
    assert not job.job_dir.exists()
    assert service.scheduler.running
    assert (await client.get(f"/status/{job_id}")).status_code == 404
