from __future__ import annotations

import httpx

from .errors import HardRemoteFailure, TransientRemoteFault
from .models import ImageRef
from .ratelimit import DEADLINE_EXTENSION, Deadline

MANIFEST_MEDIA_TYPES = (
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.oci.image.index.v1+json",
)


class RegistryClient:
    """Reads the current manifest digest of a public image tag (Docker Registry v2 API)."""

    def __init__(self, http: httpx.Client, timeout_s: float = 30.0):
        self._http = http
        self.timeout_s = timeout_s

    def _request(self, method: str, url: str, deadline: Deadline, what: str, **kwargs) -> httpx.Response:
        try:
            return self._http.request(
                method,
                url,
                timeout=deadline.timeout(self.timeout_s),
                extensions={DEADLINE_EXTENSION: deadline},
                **kwargs,
            )
        except httpx.TransportError as e:
            raise TransientRemoteFault(f"{what}: {type(e).__name__}: {e}") from e

    def pull_token(self, image: ImageRef, deadline: Deadline) -> str:
        """Anonymous bearer token scoped to pulling ``image``."""
        resp = self._request(
            "GET",
            f"https://{image.registry}/token",
            deadline,
            "registry token request",
            params={"scope": f"repository:{image.repository}:pull", "service": image.registry},
        )
        if resp.status_code != 200:
            raise HardRemoteFailure(
                f"Registry token request failed ({resp.status_code}): {resp.text[:500]}",
                status_code=resp.status_code,
                body=resp.text[:500],
            )
        try:
            token = resp.json().get("token")
        except (ValueError, AttributeError) as e:
            raise HardRemoteFailure(f"Failed to decode token response: {e}", status_code=resp.status_code) from e
        if not token:
            raise HardRemoteFailure("Registry token response has no token.", status_code=resp.status_code)
        return str(token)

    def remote_digest(self, image: ImageRef, deadline: Deadline) -> str:
        token = self.pull_token(image, deadline)
        resp = self._request(
            "HEAD",
            f"https://{image.registry}/v2/{image.repository}/manifests/{image.tag}",
            deadline,
            "manifest request",
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": ", ".join(MANIFEST_MEDIA_TYPES),
            },
        )
        if resp.status_code != 200:
            raise HardRemoteFailure(f"Manifest request failed ({resp.status_code})", status_code=resp.status_code)
        digest = resp.headers.get("Docker-Content-Digest", "")
        if not digest:
            raise HardRemoteFailure("No Docker-Content-Digest header in registry response.", status_code=200)
        return digest
