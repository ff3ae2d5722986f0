"""
Error types raised by the silence removal pipeline.

All errors inherit from JumpcutError so the scheduler can catch file-level
failures in one place. Each carries an actionable message.
"""

from typing import List, Optional

# Recorded error strings are truncated to keep status payloads small
MAX_ERROR_CHARS = 500


class JumpcutError(Exception):
    """Base exception for all pipeline failures."""
    pass


class ToolInvocationError(JumpcutError):
    """Raised when the external media tool fails to start or exits non-zero."""

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        output: str = "",
        returncode: Optional[int] = None,
    ):
        self.command = command or []
        self.output = output
        self.returncode = returncode
        super().__init__(message)

    def output_tail(self, lines: int = 10) -> str:
        """Last few lines of captured diagnostic output."""
        return "\n".join(self.output.strip().splitlines()[-lines:])


class TraceParseError(JumpcutError):
    """Raised when expected markers are absent or malformed in a tool trace."""
    pass


class EmptyResultError(JumpcutError):
    """Raised when silence removal would leave nothing to keep."""

    def __init__(self, media_path: str):
        self.media_path = media_path
        super().__init__(f"No speech detected in {media_path}: every segment was silent")


class StorageError(JumpcutError):
    """Raised on I/O failures reading inputs or writing outputs, including expiry races."""
    pass


def describe_error(exc: BaseException) -> str:
    """Short, user-presentable description of an exception."""
    message = f"{type(exc).__name__}: {exc}"
    if isinstance(exc, ToolInvocationError) and exc.output:
        message += f"\n{exc.output_tail(5)}"
    return message[:MAX_ERROR_CHARS]
