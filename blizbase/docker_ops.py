from __future__ import annotations

from typing import Any

import docker
from docker.errors import DockerException, NotFound
from requests.exceptions import RequestException

from .errors import RuntimeEngineError
from .models import ImageRef
from .ratelimit import Deadline


class DockerRuntime:
    """Local container engine over its control socket (docker-py low-level API).

    A client is built per call so each request gets a read timeout bounded by
    the caller's deadline.
    """

    def __init__(self, base_url: str = "unix:///var/run/docker.sock", timeout_s: float = 120.0):
        self.base_url = base_url
        self.timeout_s = timeout_s

    def _client(self, deadline: Deadline | None = None) -> docker.APIClient:
        timeout = deadline.timeout(self.timeout_s) if deadline is not None else self.timeout_s
        return docker.APIClient(base_url=self.base_url, timeout=timeout)

    def local_digest(self, image: ImageRef, deadline: Deadline | None = None) -> str:
        """Repo digest of the locally pulled ``image``; "" if it is not present."""
        try:
            info: dict[str, Any] = self._client(deadline).inspect_image(image.reference)
        except NotFound:
            return ""
        except (DockerException, RequestException) as e:
            raise RuntimeEngineError(f"Image inspect failed: {e}") from e

        prefix = image.name + "@"
        for d in info.get("RepoDigests") or []:
            if d.startswith(prefix):
                return d[len(prefix):]
        return ""

    def pull(self, image: ImageRef, deadline: Deadline | None = None) -> int:
        """Pull ``image`` and drain the progress stream. Returns the number of events seen."""
        events = 0
        try:
            stream = self._client(deadline).pull(image.name, tag=image.tag, stream=True, decode=True)
            for event in stream:
                events += 1
                if isinstance(event, dict) and event.get("error"):
                    raise RuntimeEngineError(f"Pull error: {event['error']}")
                if deadline is not None:
                    deadline.check("pull completed")
        except (DockerException, RequestException) as e:
            raise RuntimeEngineError(f"Pull failed: {e}") from e
        return events

    def find_container(self, image: ImageRef, deadline: Deadline | None = None) -> str | None:
        """Id of the first container created from ``image``, if any."""
        try:
            containers = self._client(deadline).containers(filters={"ancestor": [image.reference]})
        except (DockerException, RequestException) as e:
            raise RuntimeEngineError(f"List containers failed: {e}") from e
        if not containers:
            return None
        return containers[0]["Id"]

    def restart(self, container_id: str, grace_s: int = 10, deadline: Deadline | None = None) -> None:
        try:
            self._client(deadline).restart(container_id, timeout=grace_s)
        except NotFound as e:
            raise RuntimeEngineError(f"Container {container_id[:12]} vanished: {e}") from e
        except (DockerException, RequestException) as e:
            raise RuntimeEngineError(f"Restart failed: {e}") from e
