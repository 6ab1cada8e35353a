from __future__ import annotations

import os
import sys
from threading import Lock
from typing import Any

import pytest

# Ensure project root is importable (so `import main` / `import cli` work without installing).
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from blizbase.errors import HardRemoteFailure, StoreWriteFailure, TransientRemoteFault
from blizbase.models import CharacterRecord, ImageRef, MemberRef


def make_profile(cid: int, name: str, realm: str = "blackrock", **overrides: Any) -> dict[str, Any]:
    """A character profile summary shaped like the Battle.net payload (single locale)."""
    profile: dict[str, Any] = {
        "id": cid,
        "name": name,
        "gender": {"type": "FEMALE", "name": "Weiblich"},
        "faction": {"type": "HORDE", "name": "Horde"},
        "race": {"id": 10, "name": "Blutelfe"},
        "character_class": {"id": 8, "name": "Magier"},
        "active_spec": {"id": 63, "name": "Feuer"},
        "realm": {"id": 581, "name": "Blackrock", "slug": realm},
        "guild": {"id": 4242, "name": "Die Gilde", "realm": {"id": 581, "name": "Blackrock", "slug": realm}},
        "level": 80,
        "experience": 0,
        "achievement_points": 12345,
        "last_login_timestamp": 1730000000000,
        "average_item_level": 610,
        "equipped_item_level": 608,
        "active_title": {"id": 372, "name": "Die Unermüdliche", "display_string": "{name} die Unermüdliche"},
    }
    profile.update(overrides)
    return profile


class FakeRosterSource:
    """Roster + profiles from dicts; ``faults`` scripts per-name failures."""

    def __init__(self, profiles: list[dict[str, Any]], roster_error: Exception | None = None):
        self.profiles = {p["name"]: p for p in profiles}
        self.roster_error = roster_error
        self.faults: dict[str, list[Exception]] = {}
        self.always_transient: set[str] = set()
        self.calls: dict[str, int] = {}
        self._lock = Lock()

    def fetch_roster(self, guild_slug: str, realm_slug: str) -> list[MemberRef]:
        if self.roster_error is not None:
            raise self.roster_error
        return [
            MemberRef(name=p["name"], realm_slug=p["realm"]["slug"], character_id=str(p["id"]))
            for p in self.profiles.values()
        ]

    def fetch_profile(self, realm_slug: str, name: str) -> dict[str, Any]:
        with self._lock:
            self.calls[name] = self.calls.get(name, 0) + 1
            scripted = self.faults.get(name)
            fault = scripted.pop(0) if scripted else None
        if name in self.always_transient:
            raise TransientRemoteFault("no response")
        if fault is not None:
            raise fault
        return self.profiles[name]


class MemoryStore:
    def __init__(self, records: list[CharacterRecord] | None = None):
        self.records: dict[str, CharacterRecord] = {r.id: r for r in records or []}
        self.saves: list[str] = []
        self.deletes: list[str] = []
        self.fail_save_ids: set[str] = set()

    def list_all(self) -> list[CharacterRecord]:
        return list(self.records.values())

    def save(self, record: CharacterRecord) -> None:
        if record.id in self.fail_save_ids:
            raise StoreWriteFailure(f"disk full for {record.id}")
        self.saves.append(record.id)
        self.records[record.id] = record

    def delete(self, record_id: str) -> None:
        self.deletes.append(record_id)
        self.records.pop(record_id, None)

    @property
    def writes(self) -> int:
        return len(self.saves) + len(self.deletes)


class FakeRegistry:
    def __init__(self, digest: str = "sha256:AAA", error: Exception | None = None):
        self.digest = digest
        self.error = error
        self.calls = 0

    def remote_digest(self, image: ImageRef, deadline) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.digest


class FakeRuntime:
    """Records every engine call in order."""

    def __init__(self, local: str = "sha256:BBB", container_id: str | None = "c0ffee1234567890"):
        self.local = local
        self.container_id = container_id
        self.calls: list[tuple] = []
        self.pull_error: Exception | None = None
        self.find_error: Exception | None = None
        self.restart_error: Exception | None = None

    def local_digest(self, image: ImageRef, deadline=None) -> str:
        self.calls.append(("local_digest", image.reference))
        return self.local

    def pull(self, image: ImageRef, deadline=None) -> int:
        self.calls.append(("pull", image.reference))
        if self.pull_error is not None:
            raise self.pull_error
        return 3

    def find_container(self, image: ImageRef, deadline=None) -> str | None:
        self.calls.append(("find_container", image.reference))
        if self.find_error is not None:
            raise self.find_error
        return self.container_id

    def restart(self, container_id: str, grace_s: int = 10, deadline=None) -> None:
        self.calls.append(("restart", container_id, grace_s))
        if self.restart_error is not None:
            raise self.restart_error

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def image() -> ImageRef:
    return ImageRef.parse("ghcr.io/jrsmile/blizbase:latest")


@pytest.fixture
def hard_404() -> HardRemoteFailure:
    return HardRemoteFailure("profile failed (404): not found", status_code=404, body="not found")

