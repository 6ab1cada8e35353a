import time
from threading import Event

import pytest

from blizbase.reconciler import SyncReport
from blizbase.scheduler import Scheduler
from blizbase.selfupdate import UpdateResult, UpdateStatus


def test_run_job_records_outcome():
    scheduler = Scheduler(on_terminal=lambda job, result: None)
    scheduler.add("roster", 420, lambda: SyncReport(members=2, processed=2))

    scheduler.run_job("roster")

    st = scheduler.runtime.get("roster")
    assert st.runs == 1
    assert st.running is False
    assert st.last_outcome == "ok"


def test_job_exceptions_are_contained():
    def boom():
        raise RuntimeError("kaput")

    scheduler = Scheduler(on_terminal=lambda job, result: None)
    scheduler.add("roster", 420, boom)

    assert scheduler.run_job("roster") is None
    st = scheduler.runtime.get("roster")
    assert st.last_outcome == "failed"
    assert "kaput" in st.last_error


def test_job_does_not_overlap_with_itself():
    started, release = Event(), Event()
    runs = []

    def slow():
        runs.append(1)
        started.set()
        release.wait(5)
        return SyncReport()

    scheduler = Scheduler(on_terminal=lambda job, result: None)
    scheduler.add("roster", 420, slow)

    assert scheduler.trigger("roster") is True
    assert started.wait(5)
    assert scheduler.is_running("roster")
    assert scheduler.trigger("roster") is False
    assert scheduler.run_job("roster") is None
    release.set()

    deadline = time.monotonic() + 5
    while scheduler.is_running("roster") and time.monotonic() < deadline:
        time.sleep(0.01)
    assert runs == [1]
    assert scheduler.runtime.get("roster").skipped_overlaps == 1


def test_terminal_result_goes_to_handler():
    seen = []
    scheduler = Scheduler(on_terminal=lambda job, result: seen.append((job, result.status)))
    scheduler.add("self-update", 1200, lambda: UpdateResult(status=UpdateStatus.RESTART_FAILED, image="x"))
    scheduler.add("other", 1200, lambda: UpdateResult(status=UpdateStatus.UP_TO_DATE, image="x"))

    scheduler.run_job("self-update")
    scheduler.run_job("other")

    assert seen == [("self-update", UpdateStatus.RESTART_FAILED)]
    assert scheduler.runtime.get("self-update").last_outcome == "restart_failed"


def test_duplicate_job_names_are_rejected():
    scheduler = Scheduler()
    scheduler.add("roster", 420, lambda: None)
    with pytest.raises(ValueError):
        scheduler.add("roster", 420, lambda: None)
