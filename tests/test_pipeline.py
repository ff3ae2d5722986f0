"""Tests for per-file silence removal against a fake ffmpeg."""

import pytest

from jumpcut.errors import EmptyResultError, StorageError, ToolInvocationError
from jumpcut.models import FileTask, Job, JumpcutConfig
from jumpcut.pipeline import SilenceRemovalPipeline


@pytest.fixture
def media_file(tmp_path):
    path = tmp_path / "talk.mp4"
    path.write_bytes(b"not really video")
    return path


@pytest.fixture
def output_dir(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    return out


def _job(tmp_path, media_file):
    upload_dir = tmp_path / "job" / "uploads"
    output_dir = tmp_path / "job" / "outputs"
    upload_dir.mkdir(parents=True)
    output_dir.mkdir(parents=True)
    stored = upload_dir / "1700000000000-talk.mp4"
    stored.write_bytes(media_file.read_bytes())
    job = Job(id="abc123", job_dir=tmp_path / "job", upload_dir=upload_dir, output_dir=output_dir)
    file = FileTask(original_name="talk.mp4", input_path=stored)
    job.files.append(file)
    return job, file


class TestRender:
    """Test SilenceRemovalPipeline.render()."""

    async def test_cuts_detected_silences(self, fake_gateway, media_file, output_dir):
        """Test silences become a filter graph encode with planned segments."""
        pipeline = SilenceRemovalPipeline(JumpcutConfig(), gateway=fake_gateway)
        outcome = await pipeline.render(media_file, output_dir)

        assert outcome.output_name == "talk finished.mp4"
        assert outcome.output_path.read_bytes() == b"rendered media"
        assert outcome.was_cut
        assert [(s.start, s.end) for s in outcome.segments] == [
            (0.0, pytest.approx(3.3)),
            (pytest.approx(4.7), pytest.approx(7.5)),
            (pytest.approx(7.7), 10.0),
        ]
        encode = fake_gateway.encode_calls[-1]
        assert "-filter_complex" in encode
        assert "concat=n=3:v=1:a=1" in encode[encode.index("-filter_complex") + 1]
        assert outcome.kept_duration_s == pytest.approx(3.3 + 2.8 + 2.3)

    async def test_no_silences_reencodes_without_graph(
        self, gateway_factory, media_file, output_dir
    ):
        """Test the fast path when nothing is silent."""
        gateway = gateway_factory(silence_lines=[])
        pipeline = SilenceRemovalPipeline(JumpcutConfig(), gateway=gateway)
        outcome = await pipeline.render(media_file, output_dir)

        assert not outcome.was_cut
        assert outcome.kept_duration_s == pytest.approx(10.0)
        encode = gateway.encode_calls[-1]
        assert "-filter_complex" not in encode
        assert "-c:v" in encode

    async def test_entirely_silent_file_raises(self, gateway_factory, media_file, output_dir):
        gateway = gateway_factory(silence_lines=["[silencedetect @ 0x1] silence_start: 0"])
        pipeline = SilenceRemovalPipeline(JumpcutConfig(), gateway=gateway)
        with pytest.raises(EmptyResultError):
            await pipeline.render(media_file, output_dir)
        assert gateway.encode_calls == []

    async def test_keep_policy_preserves_trailing_audio(
        self, gateway_factory, media_file, output_dir
    ):
        """Test open_silence=keep ignores a silence that never closed."""
        gateway = gateway_factory(silence_lines=["[silencedetect @ 0x1] silence_start: 0"])
        config = JumpcutConfig(detection={"open_silence": "keep"})
        outcome = await SilenceRemovalPipeline(config, gateway=gateway).render(
            media_file, output_dir
        )
        assert not outcome.was_cut

    async def test_audio_only_input(self, fake_gateway, tmp_path, output_dir):
        memo = tmp_path / "memo.wav"
        memo.write_bytes(b"RIFF")
        pipeline = SilenceRemovalPipeline(JumpcutConfig(), gateway=fake_gateway)
        outcome = await pipeline.render(memo, output_dir)

        assert outcome.output_name == "memo finished.m4a"
        encode = fake_gateway.encode_calls[-1]
        assert "[0:v]" not in encode[encode.index("-filter_complex") + 1]
        assert "-c:v" not in encode

    async def test_missing_input_raises(self, fake_gateway, tmp_path, output_dir):
        pipeline = SilenceRemovalPipeline(JumpcutConfig(), gateway=fake_gateway)
        with pytest.raises(StorageError, match="Input file not found"):
            await pipeline.render(tmp_path / "gone.mp4", output_dir)

    async def test_encode_failure_propagates(self, gateway_factory, media_file, output_dir):
        gateway = gateway_factory(fail_encode=True)
        pipeline = SilenceRemovalPipeline(JumpcutConfig(), gateway=gateway)
        with pytest.raises(ToolInvocationError):
            await pipeline.render(media_file, output_dir)

    async def test_missing_output_after_encode_raises(
        self, gateway_factory, media_file, output_dir
    ):
        gateway = gateway_factory(write_output=False)
        pipeline = SilenceRemovalPipeline(JumpcutConfig(), gateway=gateway)
        with pytest.raises(StorageError, match="does not exist"):
            await pipeline.render(media_file, output_dir)


class TestProcessFile:
    """Test the job-facing wrapper."""

    async def test_records_output_and_removes_upload(self, fake_gateway, tmp_path, media_file):
        job, file = _job(tmp_path, media_file)
        pipeline = SilenceRemovalPipeline(JumpcutConfig(), gateway=fake_gateway)
        await pipeline.process_file(job, file)

        assert file.output_name == "talk finished.mp4"
        assert (job.output_dir / "talk finished.mp4").is_file()
        assert not file.input_path.exists()

    async def test_expired_job_raises_storage_error(self, fake_gateway, tmp_path, media_file):
        job, file = _job(tmp_path, media_file)
        job.expired = True
        pipeline = SilenceRemovalPipeline(JumpcutConfig(), gateway=fake_gateway)
        with pytest.raises(StorageError, match="expired"):
            await pipeline.process_file(job, file)
        assert fake_gateway.calls == []
        assert file.output_name is None
