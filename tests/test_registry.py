import httpx
import pytest

from blizbase.errors import HardRemoteFailure, TransientRemoteFault
from blizbase.ratelimit import Deadline
from blizbase.registry import MANIFEST_MEDIA_TYPES, RegistryClient


def _registry(manifest_response: httpx.Response, token_status: int = 200):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/token":
            if token_status != 200:
                return httpx.Response(token_status, text="denied")
            return httpx.Response(200, json={"token": "anon"})
        return manifest_response

    return RegistryClient(httpx.Client(transport=httpx.MockTransport(handler))), seen


def test_remote_digest_exchanges_token_then_heads_manifest(image):
    client, seen = _registry(httpx.Response(200, headers={"Docker-Content-Digest": "sha256:AAA"}))

    assert client.remote_digest(image, Deadline(60)) == "sha256:AAA"

    token_req, manifest_req = seen
    assert token_req.url.host == "ghcr.io"
    assert token_req.url.params["scope"] == "repository:jrsmile/blizbase:pull"
    assert token_req.url.params["service"] == "ghcr.io"
    assert manifest_req.method == "HEAD"
    assert manifest_req.url.path == "/v2/jrsmile/blizbase/manifests/latest"
    assert manifest_req.headers["Authorization"] == "Bearer anon"
    for media_type in MANIFEST_MEDIA_TYPES:
        assert media_type in manifest_req.headers["Accept"]


def test_missing_digest_header_aborts(image):
    client, _ = _registry(httpx.Response(200))
    with pytest.raises(HardRemoteFailure):
        client.remote_digest(image, Deadline(60))


def test_non_200_manifest_aborts(image):
    client, _ = _registry(httpx.Response(404))
    with pytest.raises(HardRemoteFailure) as exc:
        client.remote_digest(image, Deadline(60))
    assert exc.value.status_code == 404


def test_token_failure_aborts_before_manifest(image):
    client, seen = _registry(httpx.Response(200, headers={"Docker-Content-Digest": "sha256:AAA"}), token_status=401)
    with pytest.raises(HardRemoteFailure):
        client.remote_digest(image, Deadline(60))
    assert len(seen) == 1


def test_network_error_is_transient(image):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = RegistryClient(httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(TransientRemoteFault):
        client.remote_digest(image, Deadline(60))
