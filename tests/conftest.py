import asyncio
from pathlib import Path

import pytest
from httpx import AsyncClient, ASGITransport

from jumpcut.api.main import create_app
from jumpcut.errors import ToolInvocationError
from jumpcut.media_tool import ToolResult
from jumpcut.models import JumpcutConfig
from jumpcut.service import JumpcutService

# Two silences in a 10s file: 3.0-5.0 and 7.2-8.0
SILENCE_TRACE = [
    "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'talk.mp4':",
    "[silencedetect @ 0x55d1c2a0] silence_start: 3",
    "[silencedetect @ 0x55d1c2a0] silence_end: 5 | silence_duration: 2",
    "[silencedetect @ 0x55d1c2a0] silence_start: 7.2",
    "[silencedetect @ 0x55d1c2a0] silence_end: 8 | silence_duration: 0.8",
    "size=N/A time=00:00:10.00 bitrate=N/A speed= 412x",
]


def _banner(duration: float) -> list:
    hours = int(duration // 3600)
    minutes = int(duration % 3600 // 60)
    seconds = duration % 60
    return [
        "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'talk.mp4':",
        f"  Duration: {hours:02d}:{minutes:02d}:{seconds:05.2f}, start: 0.000000, bitrate: 1205 kb/s",
        "At least one output file must be specified",
    ]


class FakeGateway:
    """Stands in for MediaToolGateway, replaying canned ffmpeg diagnostics.

    Encode runs write a small file at the output path (the last argument).
    """

    def __init__(
        self,
        duration=10.0,
        silence_lines=None,
        fail_encode=False,
        write_output=True,
        encode_delay=0.0,
    ):
        self.duration = duration
        self.silence_lines = list(SILENCE_TRACE if silence_lines is None else silence_lines)
        self.fail_encode = fail_encode
        self.write_output = write_output
        self.encode_delay = encode_delay
        self.calls = []

    @property
    def encode_calls(self):
        return [c for c in self.calls if "-y" in c]

    async def run(self, args, check=True):
        self.calls.append(list(args))

        if any(a.startswith("silencedetect") for a in args):
            return self._result(self.silence_lines)

        if "-y" not in args:
            return self._result(_banner(self.duration), returncode=1)

        if self.encode_delay:
            await asyncio.sleep(self.encode_delay)
        if self.fail_encode:
            raise ToolInvocationError(
                "ffmpeg exited with status 1",
                command=list(args),
                output="Error while filtering: Invalid argument",
                returncode=1,
            )
        output = Path(args[-1])
        if not output.parent.is_dir():
            raise ToolInvocationError(
                "ffmpeg exited with status 1",
                command=list(args),
                output=f"{output}: No such file or directory",
                returncode=1,
            )
        if self.write_output:
            output.write_bytes(b"rendered media")
        return self._result(["video:12kB audio:3kB"])

    @staticmethod
    def _result(lines, returncode=0):
        return ToolResult(returncode=returncode, output="\n".join(lines), stdout="", duration_s=0.01)


def make_config(tmp_path, **queue) -> JumpcutConfig:
    """Defaults with the jobs folder inside tmp_path."""
    return JumpcutConfig(queue={"jobs_dir": str(tmp_path / "jobs"), **queue})


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def gateway_factory():
    return FakeGateway


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture(scope="function")
async def service(config, fake_gateway):
    svc = JumpcutService(config, gateway=fake_gateway)
    # ASGITransport does not run the lifespan, so start the service here
    await svc.start()
    yield svc
    await svc.stop()


@pytest.fixture(scope="function")
async def client(service):
    app = create_app(service=service)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
