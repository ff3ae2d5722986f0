"""Wires the registry, pipeline and scheduler into one running service."""

import logging
from pathlib import Path
from typing import Optional

from .media_tool import MediaToolGateway
from .models import JumpcutConfig
from .pipeline import SilenceRemovalPipeline
from .queue import JobRegistry, JobScheduler

logger = logging.getLogger(__name__)


class JumpcutService:
    """Everything the HTTP layer needs, started and stopped together."""

    def __init__(self, config: JumpcutConfig, gateway: Optional[MediaToolGateway] = None):
        self.config = config
        self.registry = JobRegistry(Path(config.queue.jobs_dir), ttl_s=config.queue.job_ttl_s)
        self.pipeline = SilenceRemovalPipeline(config, gateway=gateway)
        self.scheduler = JobScheduler(
            self.pipeline.process_file,
            max_concurrent_jobs=config.queue.max_concurrent_jobs,
        )

    async def start(self) -> None:
        self.registry.jobs_dir.mkdir(parents=True, exist_ok=True)
        await self.scheduler.start()
        logger.info(
            "jumpcut service started (jobs dir %s, %d concurrent job(s))",
            self.registry.jobs_dir,
            self.scheduler.max_concurrent_jobs,
        )

    async def stop(self) -> None:
        await self.scheduler.stop()
        self.registry.shutdown()
        logger.info("jumpcut service stopped")
