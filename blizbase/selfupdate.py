from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Protocol

from .errors import BlizbaseError
from .logging import get_logger
from .models import ImageRef
from .ratelimit import Deadline

log = get_logger(__name__)


class DigestSource(Protocol):
    def remote_digest(self, image: ImageRef, deadline: Deadline) -> str: ...


class ContainerRuntime(Protocol):
    def local_digest(self, image: ImageRef, deadline: Deadline | None = None) -> str: ...

    def pull(self, image: ImageRef, deadline: Deadline | None = None) -> int: ...

    def find_container(self, image: ImageRef, deadline: Deadline | None = None) -> str | None: ...

    def restart(self, container_id: str, grace_s: int = 10, deadline: Deadline | None = None) -> None: ...


class UpdateStatus(Enum):
    UP_TO_DATE = "up_to_date"
    RESTARTED = "restarted"
    FAILED = "failed"  # nothing changed locally; retried next cycle
    NO_TARGET = "no_target"  # pulled, but no container to restart
    RESTART_FAILED = "restart_failed"  # pulled, restart did not go through


TERMINAL_STATUSES = frozenset({UpdateStatus.NO_TARGET, UpdateStatus.RESTART_FAILED})


@dataclass
class UpdateResult:
    status: UpdateStatus
    image: str
    remote_digest: str | None = None
    local_digest: str | None = None
    container_id: str | None = None
    error: str | None = None
    steps_completed: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    completed_at: str | None = None

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "image": self.image,
            "remote_digest": self.remote_digest,
            "local_digest": self.local_digest,
            "container_id": self.container_id,
            "error": self.error,
            "steps_completed": self.steps_completed,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


class SelfUpdater:
    """Watches the registry for a new digest of our own image and restarts onto it.

    Flow:
    1. remote digest (registry)   -> any failure ends the pass, nothing touched
    2. local digest (engine)      -> same
    3. equal                      -> done
    4. pull                       -> stream error ends the pass
    5. find our container         -> none is terminal
    6. restart it                 -> failure is terminal
    """

    def __init__(
        self,
        registry: DigestSource,
        runtime: ContainerRuntime,
        image: ImageRef,
        deadline_s: float = 300.0,
        restart_grace_s: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.runtime = runtime
        self.image = image
        self.deadline_s = deadline_s
        self.restart_grace_s = restart_grace_s
        self._clock = clock

    def check_and_apply(self) -> UpdateResult:
        deadline = Deadline(self.deadline_s, clock=self._clock)
        result = UpdateResult(status=UpdateStatus.FAILED, image=self.image.reference)
        log.info("selfupdate_check_started", image=self.image.reference)

        try:
            result.remote_digest = self.registry.remote_digest(self.image, deadline)
            result.steps_completed.append("remote_digest")
            log.info("selfupdate_remote_digest", digest=result.remote_digest)

            result.local_digest = self.runtime.local_digest(self.image, deadline)
            result.steps_completed.append("local_digest")
            log.info("selfupdate_local_digest", digest=result.local_digest or None)

            if result.local_digest == result.remote_digest:
                result.status = UpdateStatus.UP_TO_DATE
                log.info("selfupdate_up_to_date", digest=result.remote_digest)
                return self._finish(result)

            log.info("selfupdate_pulling", image=self.image.reference)
            events = self.runtime.pull(self.image, deadline)
            result.steps_completed.append("pull")
            log.info("selfupdate_pulled", image=self.image.reference, events=events)
        except BlizbaseError as e:
            result.error = str(e)
            log.error("selfupdate_failed", step=_next_step(result), error=result.error)
            return self._finish(result)

        try:
            result.container_id = self.runtime.find_container(self.image, deadline)
        except BlizbaseError as e:
            # The image is pulled; without a target we cannot finish the rollout.
            result.status, result.error = UpdateStatus.NO_TARGET, str(e)
            log.error("selfupdate_container_lookup_failed", error=result.error)
            return self._finish(result)

        if not result.container_id:
            result.status = UpdateStatus.NO_TARGET
            result.error = "No running container found for this image. Pull complete; manual restart needed."
            log.error("selfupdate_no_target", image=self.image.reference)
            return self._finish(result)
        result.steps_completed.append("find_container")

        log.info("selfupdate_restarting", container_id=result.container_id[:12], grace_s=self.restart_grace_s)
        try:
            self.runtime.restart(result.container_id, grace_s=self.restart_grace_s, deadline=deadline)
        except BlizbaseError as e:
            result.status, result.error = UpdateStatus.RESTART_FAILED, str(e)
            log.error("selfupdate_restart_failed", container_id=result.container_id[:12], error=result.error)
            return self._finish(result)

        result.steps_completed.append("restart")
        result.status = UpdateStatus.RESTARTED
        return self._finish(result)

    def _finish(self, result: UpdateResult) -> UpdateResult:
        result.completed_at = datetime.now().isoformat()
        return result


def _next_step(result: UpdateResult) -> str:
    order = ("remote_digest", "local_digest", "pull")
    for step in order:
        if step not in result.steps_completed:
            return step
    return "pull"
