import time
from threading import Event

import pytest
from fastapi.testclient import TestClient

from blizbase.db import CharacterStore
from blizbase.models import record_from_profile
from blizbase.reconciler import RosterReconciler, SyncReport
from blizbase.scheduler import Scheduler
from conftest import FakeRosterSource, make_profile

import main


@pytest.fixture
def store(tmp_path):
    s = CharacterStore(str(tmp_path / "api.db"))
    s.init_db()
    return s


def _app(store, scheduler=None, start_scheduler=False):
    scheduler = scheduler or Scheduler(on_terminal=lambda job, result: None)
    if main.ROSTER_JOB not in scheduler.job_names:
        scheduler.add(main.ROSTER_JOB, 420, lambda: SyncReport())
    comps = main.Components(store=store, scheduler=scheduler)
    return main.create_app(components=comps, start_scheduler=start_scheduler)


def test_health(store):
    with TestClient(_app(store)) as client:
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"


def test_characters_list_and_get(store):
    store.save(record_from_profile(make_profile(2, "Thrall")))
    store.save(record_from_profile(make_profile(1, "Jaina")))

    with TestClient(_app(store)) as client:
        r = client.get("/characters")
        assert r.status_code == 200
        assert [c["name"] for c in r.json()] == ["Jaina", "Thrall"]

        r = client.get("/characters/2")
        assert r.status_code == 200
        assert r.json()["character_class_name"] == "Magier"

        assert client.get("/characters/404").status_code == 404


def test_jobs_and_trigger(store):
    release = Event()

    def slow():
        release.wait(5)
        return SyncReport()

    scheduler = Scheduler(on_terminal=lambda job, result: None)
    scheduler.add(main.ROSTER_JOB, 420, slow)

    with TestClient(_app(store, scheduler)) as client:
        jobs = client.get("/jobs").json()
        assert [j["name"] for j in jobs] == ["roster"]
        assert jobs[0]["running"] is False

        r = client.post("/jobs/roster/run")
        assert r.status_code == 202
        assert r.json() == {"job": "roster", "started": True}

        r = client.post("/jobs/roster/run")
        assert r.status_code == 409

        assert client.post("/jobs/nope/run").status_code == 404
        release.set()


def test_empty_store_triggers_initial_sync(store):
    source = FakeRosterSource([make_profile(1, "Jaina")])
    reconciler = RosterReconciler(source, store, "die-gilde", "blackrock", sleep=lambda s: None)
    scheduler = Scheduler(on_terminal=lambda job, result: None)
    scheduler.add(main.ROSTER_JOB, 3600, reconciler.reconcile)

    with TestClient(_app(store, scheduler, start_scheduler=True)):
        deadline = time.monotonic() + 5
        while store.count() == 0 and time.monotonic() < deadline:
            time.sleep(0.01)

    assert store.count() == 1
