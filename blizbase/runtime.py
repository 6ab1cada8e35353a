from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class JobStatus:
    name: str
    interval_s: float
    running: bool = False
    runs: int = 0
    skipped_overlaps: int = 0
    last_started_at: str | None = None
    last_finished_at: str | None = None
    last_outcome: str | None = None  # ok|failed|aborted|<update status>
    last_error: str | None = None


class RuntimeState:
    """In-memory status of the scheduled jobs, shared with the HTTP surface."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.jobs: dict[str, JobStatus] = {}

    def register(self, name: str, interval_s: float) -> None:
        with self.lock:
            self.jobs.setdefault(name, JobStatus(name=name, interval_s=interval_s))

    def mark_started(self, name: str) -> None:
        with self.lock:
            st = self.jobs[name]
            st.running = True
            st.last_started_at = utc_now()

    def mark_finished(self, name: str, outcome: str, error: str | None = None) -> None:
        with self.lock:
            st = self.jobs[name]
            st.running = False
            st.runs += 1
            st.last_finished_at = utc_now()
            st.last_outcome = outcome
            st.last_error = error

    def mark_overlap(self, name: str) -> None:
        with self.lock:
            self.jobs[name].skipped_overlaps += 1

    def get(self, name: str) -> JobStatus | None:
        with self.lock:
            st = self.jobs.get(name)
            return JobStatus(**vars(st)) if st else None

    def list_jobs(self) -> list[JobStatus]:
        with self.lock:
            return [JobStatus(**vars(st)) for st in self.jobs.values()]
