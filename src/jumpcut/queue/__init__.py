"""In-memory job registry and bounded-concurrency scheduler."""

from .registry import JobRegistry
from .scheduler import FileProcessor, JobScheduler

__all__ = [
    "FileProcessor",
    "JobRegistry",
    "JobScheduler",
]
