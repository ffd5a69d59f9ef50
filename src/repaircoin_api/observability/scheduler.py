"""In-memory run statistics for the recurring job scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class JobRunStats:
    job_id: str
    task: str
    runs: int = 0
    successes: int = 0
    failures: int = 0
    attempt_failures: int = 0
    retries: int = 0
    consecutive_failures: int = 0
    total_runtime_seconds: float = 0.0
    last_started_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_summary: Dict[str, object] | None = None

    def as_dict(self) -> Dict[str, object]:
        return {
            "jobId": self.job_id,
            "task": self.task,
            "runs": self.runs,
            "successes": self.successes,
            "failures": self.failures,
            "attemptFailures": self.attempt_failures,
            "retries": self.retries,
            "consecutiveFailures": self.consecutive_failures,
            "totalRuntimeSeconds": round(self.total_runtime_seconds, 3),
            "lastStartedAt": _iso(self.last_started_at),
            "lastSuccessAt": _iso(self.last_success_at),
            "lastErrorAt": _iso(self.last_error_at),
            "lastError": self.last_error,
            "lastSummary": self.last_summary,
        }


@dataclass
class JobSchedulerSnapshot:
    jobs: Dict[str, JobRunStats] = field(default_factory=dict)

    @property
    def failing_jobs(self) -> List[str]:
        return sorted(job_id for job_id, stats in self.jobs.items() if stats.consecutive_failures > 0)

    def as_dict(self) -> Dict[str, object]:
        return {
            "totals": {
                "runs": sum(stats.runs for stats in self.jobs.values()),
                "successes": sum(stats.successes for stats in self.jobs.values()),
                "failures": sum(stats.failures for stats in self.jobs.values()),
                "retries": sum(stats.retries for stats in self.jobs.values()),
            },
            "failingJobs": self.failing_jobs,
            "jobs": {job_id: stats.as_dict() for job_id, stats in self.jobs.items()},
        }


class JobSchedulerObservabilityStore:
    """Thread-safe counters updated by the scheduler around each job run."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._jobs: Dict[str, JobRunStats] = {}

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _stats(self, job_id: str, task: str) -> JobRunStats:
        stats = self._jobs.get(job_id)
        if stats is None:
            stats = self._jobs[job_id] = JobRunStats(job_id=job_id, task=task)
        stats.task = task
        return stats

    def record_dispatch(self, job_id: str, task: str) -> None:
        with self._lock:
            stats = self._stats(job_id, task)
            stats.runs += 1
            stats.last_started_at = _utcnow()

    def record_attempt_failure(self, job_id: str, task: str, *, error: str) -> None:
        with self._lock:
            stats = self._stats(job_id, task)
            stats.attempt_failures += 1
            stats.last_error = error
            stats.last_error_at = _utcnow()

    def record_retry(self, job_id: str, task: str) -> None:
        with self._lock:
            self._stats(job_id, task).retries += 1

    def record_success(
        self,
        job_id: str,
        task: str,
        *,
        runtime_seconds: float,
        summary: Dict[str, object] | None = None,
    ) -> None:
        with self._lock:
            stats = self._stats(job_id, task)
            stats.successes += 1
            stats.consecutive_failures = 0
            stats.total_runtime_seconds += runtime_seconds
            stats.last_success_at = _utcnow()
            stats.last_summary = summary

    def record_run_failure(self, job_id: str, task: str, *, runtime_seconds: float, error: str) -> None:
        with self._lock:
            stats = self._stats(job_id, task)
            stats.failures += 1
            stats.consecutive_failures += 1
            stats.total_runtime_seconds += runtime_seconds
            stats.last_error = error
            stats.last_error_at = _utcnow()

    def snapshot(self) -> JobSchedulerSnapshot:
        with self._lock:
            jobs = {
                job_id: JobRunStats(**{name: getattr(stats, name) for name in stats.__dataclass_fields__})
                for job_id, stats in self._jobs.items()
            }
        return JobSchedulerSnapshot(jobs=jobs)


_STORE = JobSchedulerObservabilityStore()


def get_job_scheduler_store() -> JobSchedulerObservabilityStore:
    return _STORE


__all__ = [
    "JobRunStats",
    "JobSchedulerObservabilityStore",
    "JobSchedulerSnapshot",
    "get_job_scheduler_store",
]
