# app/integrations/sync/oauth.py
from __future__ import annotations

import logging
from typing import Any

import httpx

from ..base import OAuthConfigMixin

log = logging.getLogger(__name__)


class TokenRefreshFailed(Exception):
    pass


class OAuthSyncAdapter(OAuthConfigMixin):
    """
    Base for CRM/sheet adapters that hold an OAuth access token in the
    integration config. A 401 refreshes the token once per sync call; the new
    token is reported back through `self.updates`.
    """

    name = "oauth"
    auth_scheme = "Bearer"

    def __init__(
        self,
        config: dict[str, Any],
        *,
        client: httpx.AsyncClient,
        client_id: str | None = None,
        client_secret: str | None = None,
    ) -> None:
        self.config = dict(config or {})
        self.client = client
        self.client_id = client_id or ""
        self.client_secret = client_secret or ""
        self.access_token: str = self.config.get("access_token") or ""
        self.updates: dict[str, Any] = {}
        self._refreshed = False

    def token_url(self) -> str:
        raise NotImplementedError

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"{self.auth_scheme} {self.access_token}"}

    async def refresh_access_token(self) -> str:
        r = await self.client.post(
            self.token_url(),
            data={
                "grant_type": "refresh_token",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.config.get("refresh_token") or "",
            },
        )
        token = None
        if r.status_code < 400:
            try:
                token = (r.json() or {}).get("access_token")
            except ValueError:
                token = None
        if not token:
            raise TokenRefreshFailed("Token refresh failed")

        log.info("%s: access token refreshed", self.name)
        self.access_token = token
        self.updates["access_token"] = token
        self._refreshed = True
        return token

    async def send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {**kwargs.pop("headers", {}), **self.auth_headers()}
        r = await self.client.request(method, url, headers=headers, **kwargs)
        if r.status_code == 401 and not self._refreshed:
            await self.refresh_access_token()
            headers.update(self.auth_headers())
            r = await self.client.request(method, url, headers=headers, **kwargs)
        return r


def error_message(r: httpx.Response, default: str) -> str:
    try:
        data = r.json()
    except ValueError:
        return f"{default} (HTTP {r.status_code})"
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if data.get("message"):
            return str(data["message"])
    return f"{default} (HTTP {r.status_code})"
