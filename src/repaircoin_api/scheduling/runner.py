"""APScheduler runtime for recurring housekeeping jobs."""

from __future__ import annotations

import asyncio
import inspect
import time
from importlib import import_module
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from zoneinfo import ZoneInfo

from repaircoin_api.observability.scheduler import get_job_scheduler_store

from .config import JobDefinition, ScheduleConfig, load_job_definitions

SessionFactory = Callable[[], Awaitable[Any]] | Callable[[], Any]
JobCallable = Callable[..., Awaitable[Any]]


def resolve_task(path: str) -> JobCallable:
    """Import ``package.module.function`` and ensure it is a coroutine function."""

    module_name, _, attr = path.rpartition(".")
    if not module_name:
        raise ValueError(f"Invalid task path: {path}")
    func = getattr(import_module(module_name), attr, None)
    if func is None:
        raise AttributeError(f"Task {path} not found")
    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"Task {path} must be an async function")
    return func


class JobScheduler:
    """Registers cron-triggered jobs and tracks their outcomes."""

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        config_path: Path,
        dependencies: Mapping[str, Any] | None = None,
    ) -> None:
        self._session_factory = session_factory
        # Shared objects handed to tasks that declare a keyword of the same name.
        self._dependencies = dict(dependencies or {})
        self._config_path = config_path
        self._config: ScheduleConfig | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._observability = get_job_scheduler_store()

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        config = load_job_definitions(self._config_path)
        timezone = ZoneInfo(config.timezone)
        scheduler = AsyncIOScheduler(timezone=timezone)

        for job in config.jobs:
            if not job.enabled:
                logger.info("Scheduled job disabled", job_id=job.id, task=job.task)
                continue
            scheduler.add_job(
                self.build_runner(resolve_task(job.task), job),
                trigger=CronTrigger.from_crontab(job.cron, timezone=timezone),
                id=job.id,
                replace_existing=True,
            )
            logger.info("Registered scheduled job", job_id=job.id, task=job.task, cron=job.cron)

        scheduler.start()
        self._config = config
        self._scheduler = scheduler
        logger.info("Job scheduler started", jobs=len(scheduler.get_jobs()))

    async def stop(self) -> None:
        if not self._scheduler:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        self._scheduler = None
        logger.info("Job scheduler stopped")

    def build_runner(self, func: JobCallable, job: JobDefinition) -> Callable[[], Awaitable[Any]]:
        """Wrap ``func`` with retry/backoff and observability bookkeeping."""

        parameters = inspect.signature(func).parameters
        injected = {name: value for name, value in self._dependencies.items() if name in parameters}
        call_kwargs = {**injected, **job.kwargs}

        async def _run() -> Any:
            self._observability.record_dispatch(job.id, job.task)
            started_at = time.perf_counter()

            for attempt in range(1, job.max_attempts + 1):
                try:
                    summary = await func(session_factory=self._session_factory, **call_kwargs)
                except Exception as exc:
                    error = str(exc) or exc.__class__.__name__
                    self._observability.record_attempt_failure(job.id, job.task, error=error)
                    if attempt >= job.max_attempts:
                        self._observability.record_run_failure(
                            job.id,
                            job.task,
                            runtime_seconds=time.perf_counter() - started_at,
                            error=error,
                        )
                        logger.exception("Scheduled job failed", job_id=job.id, attempts=attempt, error=error)
                        return None

                    delay = job.backoff_delay(attempt)
                    self._observability.record_retry(job.id, job.task)
                    logger.warning("Scheduled job retrying", job_id=job.id, attempt=attempt + 1, delay_seconds=delay)
                    if delay:
                        await asyncio.sleep(delay)
                    continue

                runtime_seconds = time.perf_counter() - started_at
                self._observability.record_success(
                    job.id,
                    job.task,
                    runtime_seconds=runtime_seconds,
                    summary=summary if isinstance(summary, dict) else None,
                )
                logger.info(
                    "Scheduled job completed",
                    job_id=job.id,
                    attempts=attempt,
                    runtime_seconds=round(runtime_seconds, 3),
                )
                return summary
            return None

        return _run

    def health(self) -> dict[str, object]:
        snapshot = self._observability.snapshot()
        jobs = []
        for job in self._config.jobs if self._config else []:
            stats = snapshot.jobs.get(job.id)
            jobs.append(
                {
                    "id": job.id,
                    "task": job.task,
                    "cron": job.cron,
                    "enabled": job.enabled,
                    "maxAttempts": job.max_attempts,
                    "metrics": stats.as_dict() if stats else None,
                }
            )
        return {
            "running": self.is_running,
            "configuredJobs": len(jobs),
            "failingJobs": snapshot.failing_jobs,
            "jobs": jobs,
        }


__all__ = ["JobScheduler", "resolve_task"]
