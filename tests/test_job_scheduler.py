from pathlib import Path

import pytest

from repaircoin_api.observability.scheduler import get_job_scheduler_store
from repaircoin_api.scheduling import JobScheduler, resolve_task
from repaircoin_api.scheduling.config import JobDefinition, ScheduleConfig, load_job_definitions

SCHEDULE_PATH = Path(__file__).resolve().parents[1] / "config" / "schedules.toml"


def _job(job_id: str, *, max_attempts: int) -> JobDefinition:
    return JobDefinition(
        id=job_id,
        task=f"tests.{job_id}",
        cron="* * * * *",
        kwargs={},
        max_attempts=max_attempts,
        base_backoff_seconds=0.0,
        backoff_multiplier=1.0,
        max_backoff_seconds=0.0,
        jitter_seconds=0.0,
    )


@pytest.mark.asyncio
async def test_scheduler_retries_and_records_metrics(tmp_path: Path) -> None:
    store = get_job_scheduler_store()
    store.reset()

    scheduler = JobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml")
    attempts = 0

    async def flaky_job(*, session_factory) -> dict:
        nonlocal attempts
        attempts += 1
        if attempts < 2:
            raise RuntimeError("boom")
        return {"queued": 3}

    job = _job("job-alpha", max_attempts=3)
    result = await scheduler.build_runner(flaky_job, job)()

    assert result == {"queued": 3}
    stats = store.snapshot().jobs[job.id]
    assert stats.runs == 1
    assert stats.successes == 1
    assert stats.attempt_failures == 1
    assert stats.retries == 1
    assert stats.consecutive_failures == 0
    assert stats.last_summary == {"queued": 3}
    assert attempts == 2


@pytest.mark.asyncio
async def test_scheduler_records_final_failure(tmp_path: Path) -> None:
    store = get_job_scheduler_store()
    store.reset()

    scheduler = JobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml")

    async def failing_job(*, session_factory) -> None:
        raise RuntimeError("boom")

    job = _job("job-failure", max_attempts=2)
    assert await scheduler.build_runner(failing_job, job)() is None

    snapshot = store.snapshot()
    stats = snapshot.jobs[job.id]
    assert stats.failures == 1
    assert stats.attempt_failures == 2
    assert stats.consecutive_failures == 1
    assert stats.last_error == "boom"
    assert stats.last_error_at is not None
    assert snapshot.failing_jobs == ["job-failure"]


@pytest.mark.asyncio
async def test_success_resets_failure_streak(tmp_path: Path) -> None:
    store = get_job_scheduler_store()
    store.reset()

    scheduler = JobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml")
    run_count = 0

    async def sometimes_failing_job(*, session_factory) -> None:
        nonlocal run_count
        run_count += 1
        if run_count < 3:
            raise RuntimeError("boom")

    job = _job("job-consecutive", max_attempts=1)
    runner = scheduler.build_runner(sometimes_failing_job, job)

    await runner()
    await runner()
    assert store.snapshot().jobs[job.id].consecutive_failures == 2

    await runner()

    snapshot = store.snapshot()
    stats = snapshot.jobs[job.id]
    assert stats.runs == 3
    assert stats.failures == 2
    assert stats.successes == 1
    assert stats.consecutive_failures == 0
    assert snapshot.failing_jobs == []
    assert snapshot.as_dict()["totals"] == {"runs": 3, "successes": 1, "failures": 2, "retries": 0}


@pytest.mark.asyncio
async def test_scheduler_health_lists_configured_jobs(tmp_path: Path) -> None:
    store = get_job_scheduler_store()
    store.reset()

    scheduler = JobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml")

    async def successful_job(*, session_factory) -> None:
        return None

    job = _job("job-health", max_attempts=1)
    await scheduler.build_runner(successful_job, job)()
    scheduler._config = ScheduleConfig(timezone="UTC", jobs=[job, _job("job-idle", max_attempts=1)])

    health = scheduler.health()

    assert health["running"] is False
    assert health["configuredJobs"] == 2
    assert health["failingJobs"] == []
    assert health["jobs"][0]["metrics"]["runs"] == 1
    assert health["jobs"][0]["metrics"]["lastSuccessAt"] is not None
    assert health["jobs"][1]["metrics"] is None


def test_load_job_definitions_parses_retry_fields(tmp_path: Path) -> None:
    config_path = tmp_path / "schedules.toml"
    config_path.write_text(
        """
        timezone = "UTC"

        [jobs.sample]
        task = "module.task"
        cron = "*/5 * * * *"
        max_attempts = 5
        base_backoff_seconds = 2
        backoff_multiplier = 3
        max_backoff_seconds = 30
        jitter_seconds = 1.5

        [jobs.paused]
        task = "module.other"
        cron = "0 * * * *"
        enabled = false

        [jobs.broken]
        cron = "0 * * * *"
        """
    )

    config = load_job_definitions(config_path)

    assert config.timezone == "UTC"
    assert [job.id for job in config.jobs] == ["sample", "paused"]
    job = config.jobs[0]
    assert job.max_attempts == 5
    assert job.base_backoff_seconds == 2.0
    assert job.backoff_multiplier == 3.0
    assert job.max_backoff_seconds == 30.0
    assert job.jitter_seconds == 1.5
    assert config.jobs[1].enabled is False


def test_load_job_definitions_requires_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_job_definitions(tmp_path / "missing.toml")


def test_backoff_is_capped() -> None:
    job = JobDefinition(
        id="backoff",
        task="module.task",
        cron="* * * * *",
        base_backoff_seconds=2.0,
        backoff_multiplier=3.0,
        max_backoff_seconds=30.0,
        jitter_seconds=0.0,
    )

    assert [job.backoff_delay(attempt) for attempt in (1, 2, 3, 4)] == [2.0, 6.0, 18.0, 30.0]


@pytest.mark.asyncio
async def test_scheduler_passes_shared_dependencies_to_tasks_that_accept_them(tmp_path: Path) -> None:
    get_job_scheduler_store().reset()
    shared = object()
    scheduler = JobScheduler(
        session_factory=lambda: None,
        config_path=tmp_path / "noop.toml",
        dependencies={"cleanup_service": shared},
    )

    async def wants_service(*, session_factory, cleanup_service) -> dict:
        return {"shared": cleanup_service is shared}

    async def plain_job(*, session_factory) -> dict:
        return {"ran": True}

    assert await scheduler.build_runner(wants_service, _job("job-injected", max_attempts=1))() == {"shared": True}
    assert await scheduler.build_runner(plain_job, _job("job-plain", max_attempts=1))() == {"ran": True}


def test_shipped_schedule_resolves_every_task() -> None:
    config = load_job_definitions(SCHEDULE_PATH)

    assert {job.id for job in config.jobs} == {
        "webhook_retry_sweep",
        "webhook_health_check",
        "shop_tier_refresh",
        "cleanup",
        "auto_no_show_detection",
    }
    for job in config.jobs:
        assert callable(resolve_task(job.task))


def test_resolve_task_rejects_bad_paths() -> None:
    with pytest.raises(ValueError):
        resolve_task("no_module_path")
    with pytest.raises(AttributeError):
        resolve_task("repaircoin_api.jobs.webhooks.missing_job")
    with pytest.raises(TypeError):
        resolve_task("repaircoin_api.core.settings.get_settings")
