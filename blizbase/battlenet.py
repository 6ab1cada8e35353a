from __future__ import annotations

import time
from threading import Lock
from typing import Any
from urllib.parse import quote

import httpx

from .errors import HardRemoteFailure, TransientRemoteFault
from .logging import get_logger
from .models import MemberRef

log = get_logger(__name__)

OAUTH_URL = "https://oauth.battle.net/token"


def _raise_for_status(resp: httpx.Response, what: str) -> None:
    if 200 <= resp.status_code < 300:
        return
    body = resp.text[:500]
    raise HardRemoteFailure(f"{what} failed ({resp.status_code}): {body}", status_code=resp.status_code, body=body)


class BattleNetClient:
    """Minimal World of Warcraft profile API client.

    Request-level failures (no usable response) raise TransientRemoteFault;
    any non-2xx answer raises HardRemoteFailure.
    """

    def __init__(
        self,
        http: httpx.Client,
        client_id: str | None,
        client_secret: str | None,
        region: str = "eu",
        locale: str = "de_DE",
    ):
        self._http = http
        self._client_id = client_id
        self._client_secret = client_secret
        self.region = region.lower()
        self.locale = locale
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = Lock()

    @property
    def api_base(self) -> str:
        return f"https://{self.region}.api.blizzard.com"

    @property
    def namespace(self) -> str:
        return f"profile-{self.region}"

    def _send(self, method: str, url: str, what: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._http.request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise TransientRemoteFault(f"{what}: {type(e).__name__}: {e}") from e

    def _access_token(self) -> str:
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token
            if not self._client_id or not self._client_secret:
                raise HardRemoteFailure("CLIENT_ID / CLIENT_SECRET are not configured.")
            resp = self._send(
                "POST",
                OAUTH_URL,
                "access token request",
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
            )
            _raise_for_status(resp, "access token request")
            try:
                data = resp.json()
                token = str(data["access_token"])
                # Refresh a minute early so a token never expires mid-pass.
                lifetime = max(0, int(data.get("expires_in", 0)) - 60)
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                raise HardRemoteFailure(f"Invalid token response: {e}", status_code=resp.status_code) from e
            self._token = token
            self._token_expires_at = time.monotonic() + lifetime
            log.info("battlenet_token_acquired", region=self.region)
            return self._token

    def _get_json(self, path: str, what: str) -> dict[str, Any]:
        token = self._access_token()
        resp = self._send(
            "GET",
            f"{self.api_base}{path}",
            what,
            params={"namespace": self.namespace, "locale": self.locale},
            headers={"Authorization": f"Bearer {token}"},
        )
        if resp.status_code == 401:
            # Token revoked or expired early; force a refresh next call.
            with self._token_lock:
                self._token = None
        _raise_for_status(resp, what)
        try:
            data = resp.json()
        except ValueError as e:
            raise HardRemoteFailure(f"{what}: invalid JSON", status_code=resp.status_code) from e
        if not isinstance(data, dict):
            raise HardRemoteFailure(f"{what}: unexpected payload", status_code=resp.status_code)
        return data

    def fetch_roster(self, guild_slug: str, realm_slug: str) -> list[MemberRef]:
        data = self._get_json(
            f"/data/wow/guild/{quote(realm_slug)}/{quote(guild_slug)}/roster",
            f"roster {guild_slug}@{realm_slug}",
        )
        members: list[MemberRef] = []
        for entry in data.get("members") or []:
            character = (entry or {}).get("character") or {}
            name = character.get("name")
            realm = (character.get("realm") or {}).get("slug")
            if not name or not realm:
                continue
            cid = character.get("id")
            members.append(MemberRef(name=name, realm_slug=realm, character_id=str(cid) if cid is not None else None))
        return members

    def fetch_profile(self, realm_slug: str, name: str) -> dict[str, Any]:
        return self._get_json(
            f"/profile/wow/character/{quote(realm_slug)}/{quote(name.lower())}",
            f"profile {name}-{realm_slug}",
        )
