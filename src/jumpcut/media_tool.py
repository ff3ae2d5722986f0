"""Async ffmpeg gateway with streamed diagnostics and failure artifacts.

Every external tool run in jumpcut goes through MediaToolGateway.run(): the
caller hands over an argument list and gets back the exit status plus the
captured diagnostic (stderr) text, or a ToolInvocationError carrying that
text. Parsing lives elsewhere, so it can be tested against canned traces.

Key Features:
- asyncio subprocesses (the scheduler keeps running while ffmpeg works)
- Line-by-line stderr streaming with an optional per-line callback
- Optional cap on concurrently live tool processes
- Optional timeout (process is killed, not left running)
- Artifact preservation on failure
"""

import asyncio
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .errors import ToolInvocationError
from .models import MediaToolConfig

logger = logging.getLogger(__name__)

# asyncio's default 64 KiB line limit is too small for some ffmpeg banners
STREAM_LIMIT = 1024 * 1024


@dataclass
class ToolResult:
    """Result of one tool run."""
    returncode: int
    output: str                      # captured diagnostic stream (stderr)
    stdout: str
    duration_s: float
    artifacts_saved: List[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def lines(self) -> Iterator[str]:
        return iter(self.output.splitlines())


class MediaToolGateway:
    """Runs the ffmpeg executable and captures what it reports.

    Example:
        >>> gateway = MediaToolGateway()
        >>> result = await gateway.run(["-i", "talk.mp4", "-f", "null", "-"])
        >>> for line in result.lines():
        ...     print(line)
    """

    def __init__(
        self,
        executable: Optional[str] = None,
        max_processes: Optional[int] = None,
        timeout_s: Optional[float] = None,
        save_artifacts_on_failure: bool = False,
        artifacts_dir: Optional[str] = None,
        line_callback: Optional[Callable[[str], None]] = None,
    ):
        """Initialize the gateway.

        Args:
            executable: Tool to run (None = bundled imageio-ffmpeg binary)
            max_processes: Cap on concurrently running tool processes
            timeout_s: Kill a run after this many seconds (None = no limit)
            save_artifacts_on_failure: Save logs and commands on failure
            artifacts_dir: Directory for artifacts (None = system temp dir)
            line_callback: Called with every diagnostic line as it arrives
        """
        self._executable = executable
        self.timeout_s = timeout_s
        self.save_artifacts_on_failure = save_artifacts_on_failure
        self.artifacts_dir = artifacts_dir
        self.line_callback = line_callback
        self._slots = asyncio.Semaphore(max_processes) if max_processes else None

    @classmethod
    def from_config(cls, media: MediaToolConfig) -> "MediaToolGateway":
        return cls(
            executable=media.ffmpeg_path,
            max_processes=media.max_tool_processes,
            timeout_s=media.timeout_s,
            save_artifacts_on_failure=media.save_artifacts_on_failure,
            artifacts_dir=media.artifacts_dir,
        )

    @property
    def executable(self) -> str:
        if self._executable is None:
            self._executable = self._get_ffmpeg_exe()
        return self._executable

    async def run(self, args: List[str], check: bool = True) -> ToolResult:
        """Run the tool with ``args`` and wait for it to exit.

        Args:
            args: Arguments after the executable name
            check: Raise ToolInvocationError on a non-zero exit status

        Returns:
            ToolResult with exit status and captured output

        Raises:
            ToolInvocationError: Tool could not start, timed out, or
                (with check=True) exited non-zero
        """
        if self._slots is None:
            return await self._run(args, check)
        async with self._slots:
            return await self._run(args, check)

    async def version(self) -> str:
        """First line of ``-version`` output."""
        result = await self.run(["-version"])
        text = result.stdout or result.output
        return text.strip().splitlines()[0] if text.strip() else ""

    async def _run(self, args: List[str], check: bool) -> ToolResult:
        try:
            cmd = [self.executable, *args]
        except RuntimeError as e:
            # imageio-ffmpeg found no bundled or system binary
            raise ToolInvocationError(f"ffmpeg executable not found: {e}") from e
        tool = Path(cmd[0]).name
        logger.debug("Running %s", " ".join(cmd))
        start_time = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise ToolInvocationError(f"Could not start {cmd[0]}: {e}", command=cmd) from e

        lines: List[str] = []
        try:
            stdout_bytes, _ = await asyncio.wait_for(
                asyncio.gather(process.stdout.read(), self._pump_lines(process.stderr, lines)),
                timeout=self.timeout_s,
            )
            returncode = await process.wait()
        except asyncio.TimeoutError:
            self._kill(process)
            await process.wait()
            raise ToolInvocationError(
                f"{tool} timed out after {self.timeout_s}s",
                command=cmd,
                output="\n".join(lines),
                returncode=process.returncode,
            )
        except asyncio.CancelledError:
            self._kill(process)
            await asyncio.shield(process.wait())
            raise

        output = "\n".join(lines)
        result = ToolResult(
            returncode=returncode,
            output=output,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            duration_s=time.monotonic() - start_time,
        )

        if not result.success:
            if self.save_artifacts_on_failure:
                result.artifacts_saved = self._save_failure_artifacts(cmd, result.stdout, output)
            if check:
                message = f"{tool} exited with status {returncode}"
                if result.artifacts_saved:
                    message += f" (artifacts: {', '.join(str(p) for p in result.artifacts_saved)})"
                raise ToolInvocationError(
                    message, command=cmd, output=output, returncode=returncode
                )

        return result

    async def _pump_lines(self, stream: asyncio.StreamReader, lines: List[str]) -> None:
        async for raw in stream:
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            lines.append(line)
            logger.debug("ffmpeg: %s", line)
            if self.line_callback:
                self.line_callback(line)

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass

    def _save_failure_artifacts(self, cmd: List[str], stdout: str, stderr: str) -> List[Path]:
        """Save debugging artifacts on tool failure.

        Creates:
        - ffmpeg_error_{timestamp}.log: Command + stdout + stderr
        - ffmpeg_cmd_{timestamp}.sh: Reproducible command script
        """
        artifacts = []
        artifacts_dir = self._get_artifacts_dir()
        timestamp = f"{int(time.time())}_{os.getpid()}"

        log_path = artifacts_dir / f"ffmpeg_error_{timestamp}.log"
        try:
            with open(log_path, "w") as f:
                f.write("=" * 80 + "\n")
                f.write("FFmpeg Error Log\n")
                f.write(f"Timestamp: {time.ctime()}\n")
                f.write("=" * 80 + "\n\n")
                f.write("COMMAND:\n")
                f.write(" ".join(cmd) + "\n\n")
                f.write("STDOUT:\n")
                f.write((stdout or "(empty)") + "\n\n")
                f.write("STDERR:\n")
                f.write((stderr or "(empty)") + "\n")
            artifacts.append(log_path)
        except OSError as e:
            logger.warning("Failed to save error log: %s", e)

        script_path = artifacts_dir / f"ffmpeg_cmd_{timestamp}.sh"
        try:
            with open(script_path, "w") as f:
                f.write("#!/bin/bash\n")
                f.write("# Reproducible FFmpeg command\n")
                f.write("# Generated: " + time.ctime() + "\n\n")

                escaped_cmd = []
                for arg in cmd:
                    if " " in arg or any(c in arg for c in ["$", "`", '"', "\\", ";", "[", "]"]):
                        escaped_cmd.append("'" + arg.replace("'", "'\\''") + "'")
                    else:
                        escaped_cmd.append(arg)

                f.write(" \\\n  ".join(escaped_cmd) + "\n")

            script_path.chmod(0o755)
            artifacts.append(script_path)
        except OSError as e:
            logger.warning("Failed to save command script: %s", e)

        return artifacts

    def _get_artifacts_dir(self) -> Path:
        if self.artifacts_dir:
            artifacts_dir = Path(self.artifacts_dir)
        else:
            artifacts_dir = Path(tempfile.gettempdir())
        artifacts_dir.mkdir(parents=True, exist_ok=True)
        return artifacts_dir

    @staticmethod
    def _get_ffmpeg_exe() -> str:
        """Get FFmpeg executable path."""
        import imageio_ffmpeg
        return imageio_ffmpeg.get_ffmpeg_exe()
