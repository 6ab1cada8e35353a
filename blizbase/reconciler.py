from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from .errors import BlizbaseError, HardRemoteFailure, StoreWriteFailure, TransientRemoteFault
from .logging import get_logger
from .models import CharacterRecord, MemberRef, diff_records, record_from_profile
from .retry import RetriesExhausted, RetryPolicy, retry_call

log = get_logger(__name__)


def _member_key(name: str, realm_slug: str) -> tuple[str, str]:
    return name.lower(), realm_slug.lower()


class RosterSource(Protocol):
    def fetch_roster(self, guild_slug: str, realm_slug: str) -> list[MemberRef]: ...

    def fetch_profile(self, realm_slug: str, name: str) -> dict[str, Any]: ...


class RecordStore(Protocol):
    def list_all(self) -> list[CharacterRecord]: ...

    def save(self, record: CharacterRecord) -> None: ...

    def delete(self, record_id: str) -> None: ...


@dataclass
class SyncReport:
    members: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    deleted: int = 0
    aborted: bool = False
    error: str | None = None

    @property
    def writes(self) -> int:
        return self.created + self.updated + self.deleted


class RosterReconciler:
    """Converges the character store toward the guild roster, one pass per call."""

    def __init__(
        self,
        source: RosterSource,
        store: RecordStore,
        guild_slug: str,
        realm_slug: str,
        retry_policy: RetryPolicy | None = None,
        fetch_workers: int = 4,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source = source
        self.store = store
        self.guild_slug = guild_slug
        self.realm_slug = realm_slug
        self.retry_policy = retry_policy or RetryPolicy()
        self.fetch_workers = max(1, int(fetch_workers))
        self._sleep = sleep

    def reconcile(self) -> SyncReport:
        report = SyncReport()
        log.info("roster_sync_started", guild=self.guild_slug, realm=self.realm_slug)

        try:
            members = self.source.fetch_roster(self.guild_slug, self.realm_slug)
        except BlizbaseError as e:
            report.aborted, report.error = True, str(e)
            log.error("roster_fetch_failed", guild=self.guild_slug, realm=self.realm_slug, error=str(e))
            return report

        try:
            existing = {r.id: r for r in self.store.list_all() if r.id}
        except Exception as e:
            report.aborted, report.error = True, f"{type(e).__name__}: {e}"
            log.error("store_list_failed", error=report.error)
            return report

        report.members = len(members)
        # Roster membership alone keeps a record alive; a failed profile fetch must not delete it.
        seen: set[str] = {m.character_id for m in members if m.character_id}
        # Skipped members the roster gave no id for are matched by name and realm instead.
        held: set[tuple[str, str]] = set()

        with ThreadPoolExecutor(max_workers=self.fetch_workers, thread_name_prefix="profile") as pool:
            futures: dict[Future, MemberRef] = {pool.submit(self._fetch_profile, m): m for m in members}
            # Writes happen here, in the reconciling thread, one record at a time.
            for fut in as_completed(futures):
                member = futures[fut]
                profile = fut.result()
                if profile is None:
                    report.skipped += 1
                    held.add(_member_key(member.name, member.realm_slug))
                    continue
                try:
                    candidate = record_from_profile(profile)
                except (KeyError, TypeError, ValueError) as e:
                    report.skipped += 1
                    held.add(_member_key(member.name, member.realm_slug))
                    log.warning("profile_unusable", character=member.name, realm=member.realm_slug, error=str(e))
                    continue
                seen.add(candidate.id)
                report.processed += 1
                if self._apply(existing.get(candidate.id), candidate, report):
                    # A roster listing the same character twice must not create it twice.
                    existing[candidate.id] = candidate

        log.info("roster_sync_finished", members=report.members, processed=report.processed)

        for record_id, record in existing.items():
            if record_id in seen or _member_key(record.name, record.realm) in held:
                continue
            try:
                self.store.delete(record_id)
            except StoreWriteFailure as e:
                report.failed += 1
                log.error("character_delete_failed", character_id=record_id, error=str(e))
                continue
            report.deleted += 1
            log.info("character_deleted", character_id=record_id, character=record.name, realm=record.realm_name)

        log.info(
            "roster_cleanup_finished",
            created=report.created,
            updated=report.updated,
            unchanged=report.unchanged,
            skipped=report.skipped,
            deleted=report.deleted,
            failed=report.failed,
        )
        return report

    def _fetch_profile(self, member: MemberRef) -> dict[str, Any] | None:
        """Profile payload, or None when the member has to be skipped this pass."""
        label = f"{member.name}-{member.realm_slug}"
        try:
            return retry_call(
                lambda: self.source.fetch_profile(member.realm_slug, member.name),
                self.retry_policy,
                retry_on=(TransientRemoteFault,),
                sleep=self._sleep,
                label=label,
            )
        except RetriesExhausted as e:
            log.warning(
                "profile_fetch_skipped",
                character=label,
                character_id=member.character_id,
                attempts=e.attempts,
                error=str(e.last_error),
            )
        except HardRemoteFailure as e:
            log.warning(
                "profile_fetch_failed",
                character=label,
                character_id=member.character_id,
                status=e.status_code,
                error=str(e),
            )
        except BlizbaseError as e:
            log.warning("profile_fetch_failed", character=label, character_id=member.character_id, error=str(e))
        except Exception as e:
            log.exception(
                "profile_fetch_crashed",
                character=label,
                character_id=member.character_id,
                error=f"{type(e).__name__}: {e}",
            )
        return None

    def _apply(self, stored: CharacterRecord | None, candidate: CharacterRecord, report: SyncReport) -> bool:
        """Write ``candidate`` if it differs from ``stored``. True when it was saved."""
        changes = diff_records(stored, candidate)
        if not changes:
            report.unchanged += 1
            return False

        if stored is not None:
            first = changes[0]
            log.info(
                "character_changed",
                character_id=candidate.id,
                character=candidate.name,
                field=first.field,
                old=first.old,
                new=first.new,
                changed_fields=len(changes),
            )

        try:
            self.store.save(candidate)
        except StoreWriteFailure as e:
            report.failed += 1
            log.error(
                "character_write_failed",
                character_id=candidate.id,
                character=candidate.name,
                op="update" if stored else "create",
                error=str(e),
            )
            return False

        if stored is None:
            report.created += 1
            log.info("character_created", character_id=candidate.id, character=candidate.name, realm=candidate.realm_name)
        else:
            report.updated += 1
        return True
