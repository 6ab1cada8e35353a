from __future__ import annotations

import os
from dataclasses import dataclass
from threading import Event, Lock, Thread
from typing import Any, Callable

from .logging import get_logger
from .reconciler import SyncReport
from .runtime import RuntimeState
from .selfupdate import UpdateResult

log = get_logger(__name__)


def exit_process(job: str, result: Any) -> None:
    """Default escalation for a terminal result: leave it to the supervisor."""
    log.critical("job_terminal_failure_exiting", job=job, result=getattr(result, "to_dict", lambda: result)())
    # Called from a worker thread; sys.exit would only end that thread.
    os._exit(1)


def describe(result: Any) -> tuple[str, str | None, bool]:
    """(outcome, error, terminal) for whatever a job returned."""
    if isinstance(result, UpdateResult):
        return result.status.value, result.error, result.terminal
    if isinstance(result, SyncReport):
        return ("aborted" if result.aborted else "ok"), result.error, False
    return "ok", None, False


@dataclass
class Job:
    name: str
    interval_s: float
    fn: Callable[[], Any]
    guard: Lock
    thread: Thread | None = None


class Scheduler:
    """Runs each job on its own fixed cadence in a daemon thread.

    A job never overlaps with itself: a tick (or manual trigger) that finds the
    previous run still going is skipped. Different jobs run independently.
    """

    def __init__(
        self,
        runtime: RuntimeState | None = None,
        on_terminal: Callable[[str, Any], None] = exit_process,
    ):
        self.runtime = runtime or RuntimeState()
        self.on_terminal = on_terminal
        self._jobs: dict[str, Job] = {}
        self._stop = Event()

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    def add(self, name: str, interval_s: float, fn: Callable[[], Any]) -> None:
        if name in self._jobs:
            raise ValueError(f"Job '{name}' already registered.")
        self._jobs[name] = Job(name=name, interval_s=max(1.0, float(interval_s)), fn=fn, guard=Lock())
        self.runtime.register(name, self._jobs[name].interval_s)

    def start(self) -> None:
        self._stop.clear()
        for job in self._jobs.values():
            if job.thread and job.thread.is_alive():
                continue
            job.thread = Thread(target=self._loop, args=(job,), name=f"job-{job.name}", daemon=True)
            job.thread.start()
        log.info("scheduler_started", jobs={j.name: j.interval_s for j in self._jobs.values()})

    def stop(self) -> None:
        self._stop.set()

    def _loop(self, job: Job) -> None:
        while not self._stop.wait(job.interval_s):
            self.run_job(job.name)

    def is_running(self, name: str) -> bool:
        return self._jobs[name].guard.locked()

    def trigger(self, name: str) -> bool:
        """Run a job once in the background. False if it is already running."""
        job = self._jobs[name]
        if not job.guard.acquire(blocking=False):
            return False
        # The guard is handed over to the worker thread, which releases it.
        Thread(target=self._execute, args=(job,), name=f"job-{name}-manual", daemon=True).start()
        return True

    def run_job(self, name: str) -> Any:
        """Run ``name`` now in the calling thread, unless it is already running."""
        job = self._jobs[name]
        if not job.guard.acquire(blocking=False):
            self.runtime.mark_overlap(name)
            log.warning("job_skipped_overlap", job=name)
            return None
        return self._execute(job)

    def _execute(self, job: Job) -> Any:
        name = job.name
        try:
            self.runtime.mark_started(name)
            try:
                result = job.fn()
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                self.runtime.mark_finished(name, "failed", error)
                log.exception("job_failed", job=name, error=error)
                return None
            outcome, error, terminal = describe(result)
            self.runtime.mark_finished(name, outcome, error)
            log.info("job_finished", job=name, outcome=outcome)
        finally:
            job.guard.release()

        if terminal:
            self.on_terminal(name, result)
        return result
