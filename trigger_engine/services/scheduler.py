"""
Scheduler Service - periodic trigger scans.

Holds named jobs, each either on a fixed interval or at a fixed local time of
day, plus an optional warm-up run shortly after start. A background thread
polls for due jobs and runs them on a small job pool, so independent scans can
overlap. run_pending(now) performs one tick synchronously for tests and
manual runs.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    """A named periodic job and its run state."""

    name: str
    func: Callable[[], Any]
    interval: timedelta
    daily_at: Optional[time] = None  # first run at this local time, then every interval
    warm_up: bool = False
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None
    run_count: int = 0
    running: bool = False


def next_daily_run(now: datetime, at: time) -> datetime:
    """Next occurrence of a local time of day; tomorrow once today's has started."""
    candidate = now.replace(hour=at.hour, minute=at.minute, second=at.second, microsecond=0)
    if now >= candidate:
        candidate += timedelta(days=1)
    return candidate


class TriggerScheduler:
    """
    Runs scan jobs on their schedules.

    The clock is injectable and run_pending() takes an explicit time, so
    schedules can be driven deterministically without waiting on wall time.
    """

    def __init__(
        self,
        jobs: Optional[list[ScheduledJob]] = None,
        warm_up_delay: timedelta = timedelta(seconds=60),
        clock: Callable[[], datetime] = datetime.now,
        poll_interval: float = 1.0,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            jobs: Jobs to schedule
            warm_up_delay: Delay before the warm-up run of warm_up jobs
            clock: Returns the current local time
            poll_interval: Seconds between checks for due jobs
        """
        self.warm_up_delay = warm_up_delay
        self.clock = clock
        self.poll_interval = poll_interval
        self._jobs: dict[str, ScheduledJob] = {}
        self._lock = threading.RLock()
        self._primed = False
        self._thread: Optional[threading.Thread] = None
        self._pool: Optional[ThreadPoolExecutor] = None
        self._stop_event = threading.Event()

        for job in jobs or []:
            self.add_job(job)

        logger.info(f"TriggerScheduler initialized with {len(self._jobs)} jobs")

    @property
    def jobs(self) -> list[ScheduledJob]:
        with self._lock:
            return list(self._jobs.values())

    def get_job(self, name: str) -> Optional[ScheduledJob]:
        with self._lock:
            return self._jobs.get(name)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def add_job(self, job: ScheduledJob) -> None:
        """Register a job; scheduled immediately if the scheduler is primed."""
        if job.interval <= timedelta(0):
            raise ValueError(f"Job {job.name} needs a positive interval")

        with self._lock:
            if job.name in self._jobs:
                raise ValueError(f"Job {job.name} already registered")
            self._jobs[job.name] = job
            if self._primed:
                self._schedule_first(job, self.clock())

    def _schedule_first(self, job: ScheduledJob, now: datetime) -> None:
        if job.daily_at is not None:
            job.next_run = next_daily_run(now, job.daily_at)
        elif job.warm_up:
            job.next_run = now + min(self.warm_up_delay, job.interval)
        else:
            job.next_run = now + job.interval

    def prime(self, now: Optional[datetime] = None) -> None:
        """Compute first run times relative to now."""
        now = now or self.clock()
        with self._lock:
            for job in self._jobs.values():
                self._schedule_first(job, now)
            self._primed = True

    def _claim_due(self, now: datetime) -> list[ScheduledJob]:
        """Mark due jobs as running and advance their next run."""
        if not self._primed:
            self.prime(now)

        due = []
        with self._lock:
            for job in self._jobs.values():
                if job.running or job.next_run is None or job.next_run > now:
                    continue
                # Missed runs collapse into one
                while job.next_run <= now:
                    job.next_run += job.interval
                job.running = True
                due.append(job)
        return due

    def _run_job(self, job: ScheduledJob, now: Optional[datetime] = None) -> None:
        started = now or self.clock()
        logger.info(f"Running scheduled job {job.name}")
        error = None
        try:
            job.func()
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(f"Scheduled job {job.name} failed: {e}", exc_info=True)
        finally:
            with self._lock:
                job.running = False
                job.last_run = started
                job.last_error = error
                job.run_count += 1

    def run_pending(self, now: Optional[datetime] = None) -> list[str]:
        """
        Run every due job synchronously.

        Args:
            now: Tick time (defaults to the clock)

        Returns:
            Names of the jobs that ran
        """
        now = now or self.clock()
        due = self._claim_due(now)
        for job in due:
            self._run_job(job, now)
        return [job.name for job in due]

    def run_job(self, name: str) -> bool:
        """
        Run a job now, outside its schedule.

        Returns:
            False if the job was already running and nothing was started

        Raises:
            KeyError: If no job has that name
        """
        with self._lock:
            job = self._jobs.get(name)
            if job is None:
                raise KeyError(name)
            if job.running:
                logger.warning(f"Job {name} is already running; manual run skipped")
                return False
            job.running = True
        self._run_job(job)
        return True

    def start(self) -> None:
        """Start the background scheduling thread."""
        if self.is_running():
            logger.warning("Scheduler thread already running")
            return

        self.prime()
        self._stop_event.clear()
        self._pool = ThreadPoolExecutor(
            max_workers=max(1, len(self._jobs)),
            thread_name_prefix="trigger-job",
        )
        self._thread = threading.Thread(
            target=self._run_loop,
            daemon=True,
            name="trigger-scheduler",
        )
        self._thread.start()
        logger.info("Started scheduler thread")

    def stop(self, timeout: float = 30.0) -> None:
        """Stop the scheduler and let in-flight jobs finish."""
        if self._thread is None:
            return

        self._stop_event.set()
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None
        self._thread = None
        logger.info("Stopped scheduler thread")

    def _run_loop(self) -> None:
        logger.info("Scheduler loop started")

        while not self._stop_event.is_set():
            try:
                for job in self._claim_due(self.clock()):
                    self._pool.submit(self._run_job, job)
            except Exception as e:
                logger.error(f"Error in scheduler loop: {e}", exc_info=True)

            self._stop_event.wait(timeout=self.poll_interval)

        logger.info("Scheduler loop stopped")

    def status(self) -> dict[str, Any]:
        """Scheduler and per-job state for health reporting."""
        with self._lock:
            jobs = [
                {
                    'name': job.name,
                    'nextRun': job.next_run.isoformat() if job.next_run else None,
                    'lastRun': job.last_run.isoformat() if job.last_run else None,
                    'runCount': job.run_count,
                    'lastError': job.last_error,
                    'running': job.running,
                }
                for job in self._jobs.values()
            ]
        return {'running': self.is_running(), 'jobs': jobs}
