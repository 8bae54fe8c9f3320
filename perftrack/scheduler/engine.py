"""
Job Scheduler

Timer-driven dispatch of a fixed set of periodic jobs on one asyncio event loop.

- A ticker coroutine calls tick() every tick_interval seconds. tick() marks each due
  job as running, sets its last_run to the tick time (before the task starts, so a
  long run does not cause immediate re-entry) and puts it on an asyncio.Queue.
- A dispatcher coroutine drains the queue and starts one task per job run.
- Each run is isolated: an exception is logged, written to cron_job_stats:{name}
  as a failure and, for critical jobs, escalated onto the critical_alerts list.
  It never reaches the ticker or other jobs.

Shutdown stops ticking, waits for running jobs by polling every
shutdown_poll_interval seconds for at most shutdown_timeout seconds, then closes the
store connection whether or not jobs have finished. Jobs still running at that point
are abandoned; availability of a prompt restart wins over completing their work.
"""

import asyncio
import time
from typing import Callable, Dict, Iterable, List, Optional

import structlog

from perftrack.cache.client import StoreClient
from perftrack.cache.exceptions import StoreError
from perftrack.config.monitoring import SchedulerConfig
from perftrack.monitoring.logging import job_run_scope
from perftrack.monitoring.metrics import PerftrackMetricsCollector
from perftrack.monitoring.store import now_ms
from perftrack.scheduler.exceptions import DuplicateJobError, SchedulerStateError
from perftrack.scheduler.jobs import CronJob, JobStatus
from perftrack.scheduler.notifications import NotificationSink

logger = structlog.get_logger(__name__)


class JobScheduler:
    def __init__(
        self,
        store: StoreClient,
        jobs: Iterable[CronJob],
        notifications: NotificationSink,
        config: Optional[SchedulerConfig] = None,
        metrics: Optional[PerftrackMetricsCollector] = None,
        clock: Callable[[], int] = now_ms
    ):
        self.store = store
        self.notifications = notifications
        self.config = config or SchedulerConfig()
        self.metrics = metrics
        self.clock = clock

        self._jobs: List[CronJob] = []
        for job in jobs:
            if any(existing.name == job.name for existing in self._jobs):
                raise DuplicateJobError(job.name)
            self._jobs.append(job)

        self._queue: asyncio.Queue = asyncio.Queue()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._ticker_task: Optional[asyncio.Task] = None
        self._dispatcher_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._shutting_down = False
        self._stopped = asyncio.Event()

    @property
    def jobs(self) -> List[CronJob]:
        return list(self._jobs)

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def running_jobs(self) -> List[str]:
        return [job.name for job in self._jobs if job.is_running]

    def get_job(self, name: str) -> Optional[CronJob]:
        return next((job for job in self._jobs if job.name == name), None)

    def tick(self, now_ms: Optional[int] = None) -> List[CronJob]:
        """
        Enqueue every due job.

        Args:
            now_ms: Tick time in epoch milliseconds, defaults to the clock

        Returns:
            Jobs enqueued by this tick
        """
        if self._shutting_down:
            return []

        now = self.clock() if now_ms is None else now_ms
        due = []
        for job in self._jobs:
            if job.is_due(now):
                job.is_running = True
                job.last_run = now
                self._queue.put_nowait(job)
                due.append(job)
        return due

    def dispatch_pending(self) -> List[asyncio.Task]:
        """Start a task for every queued job without waiting for the dispatcher."""
        tasks = []
        while True:
            try:
                job = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            tasks.append(self._spawn(job))
        return tasks

    def _spawn(self, job: CronJob) -> asyncio.Task:
        task = asyncio.create_task(self._execute_job(job), name=f"job:{job.name}")
        self._tasks[job.name] = task
        task.add_done_callback(lambda _, name=job.name: self._tasks.pop(name, None))
        if self.metrics:
            self.metrics.set_jobs_running(len(self._tasks))
        return task

    async def _ticker(self) -> None:
        while not self._shutting_down:
            self.tick()
            await asyncio.sleep(self.config.tick_interval)

    async def _dispatcher(self) -> None:
        while True:
            job = await self._queue.get()
            self._spawn(job)

    async def _execute_job(self, job: CronJob) -> None:
        with job_run_scope(job.name):
            logger.info("Running job", job=job.name)
            started = time.perf_counter()
            status = JobStatus.SUCCESS

            try:
                await job.task()
            except asyncio.CancelledError:
                status = JobStatus.FAILED
                job.last_error = 'cancelled'
                logger.warning("Job cancelled", job=job.name)
                raise
            except Exception as e:
                status = JobStatus.FAILED
                error = str(e) or type(e).__name__
                job.last_error = error
                logger.error("Job failed", job=job.name, error=error, exc_info=True)

                await self._record_status(job, {
                    'lastRun': job.last_run,
                    'status': status.value,
                    'error': error,
                })

                if job.critical:
                    await self._escalate(job, error)
            else:
                duration_ms = int((time.perf_counter() - started) * 1000)
                job.last_error = None
                logger.info("Job completed", job=job.name, duration_ms=duration_ms)

                await self._record_status(job, {
                    'lastRun': job.last_run,
                    'duration': duration_ms,
                    'status': status.value,
                })
            finally:
                job.last_status = status
                job.run_count += 1
                job.is_running = False
                self._after_run(job, status, time.perf_counter() - started)

    async def _record_status(self, job: CronJob, record: Dict[str, object]) -> None:
        try:
            await self.store.hset(f"cron_job_stats:{job.name}", record)
        except StoreError as e:
            logger.error("Failed to record job status", job=job.name, error=str(e))

    async def _escalate(self, job: CronJob, error: str) -> None:
        try:
            await self.notifications.critical_alert(job.name, error)
        except StoreError as e:
            logger.error("Failed to push critical alert", job=job.name, error=str(e))

    def _after_run(self, job: CronJob, status: JobStatus, duration_seconds: float) -> None:
        if not self.metrics:
            return
        self.metrics.record_job_run(job.name, status.value, duration_seconds, critical=job.critical)
        self.metrics.set_jobs_running(len(self.running_jobs))
        self.metrics.write_textfile()

    def start(self) -> None:
        """Start the ticker and dispatcher on the running event loop."""
        if self._shutting_down:
            raise SchedulerStateError("Scheduler has been shut down", state='shutting_down')
        if self._ticker_task is not None:
            raise SchedulerStateError("Scheduler already started", state='running')

        self._ticker_task = asyncio.create_task(self._ticker(), name='scheduler-ticker')
        self._dispatcher_task = asyncio.create_task(self._dispatcher(), name='scheduler-dispatcher')

        logger.info(
            "Scheduler started",
            jobs=[job.name for job in self._jobs],
            tick_interval=self.config.tick_interval
        )

    async def run(self) -> None:
        """Start the scheduler and block until shutdown has completed."""
        self.start()
        await self._stopped.wait()

    def request_shutdown(self, reason: str = 'requested') -> asyncio.Task:
        """
        Begin graceful shutdown; safe to call from signal handlers and more
        than once.

        Returns:
            The shutdown task, resolving to True when all jobs finished in time
        """
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.get_running_loop().create_task(
                self._shutdown(reason), name='scheduler-shutdown'
            )
        return self._shutdown_task

    async def shutdown(self, reason: str = 'requested') -> bool:
        return await self.request_shutdown(reason)

    async def _shutdown(self, reason: str) -> bool:
        self._shutting_down = True
        logger.info("Scheduler shutting down", reason=reason, running_jobs=self.running_jobs)

        background = [task for task in (self._ticker_task, self._dispatcher_task) if task is not None]
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)

        # queued but never started
        while not self._queue.empty():
            self._queue.get_nowait().is_running = False

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.shutdown_timeout
        while self.running_jobs and loop.time() < deadline:
            logger.info("Waiting for running jobs to complete", running_jobs=self.running_jobs)
            await asyncio.sleep(min(self.config.shutdown_poll_interval, max(deadline - loop.time(), 0)))

        completed = not self.running_jobs
        if not completed:
            logger.warning(
                "Shutdown wait expired with jobs still running",
                running_jobs=self.running_jobs,
                shutdown_timeout=self.config.shutdown_timeout
            )

        await self.store.quit()
        self._stopped.set()

        logger.info("Scheduler shutdown complete", reason=reason, all_jobs_finished=completed)
        return completed


__all__ = [
    'JobScheduler',
]
