from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, BinaryIO

import requests

from .errors import PostError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
MEDIA_WAIT_SECONDS = 5.0
MEDIA_POLL_SECONDS = 0.5


class Visibility(str, Enum):
    PUBLIC = "public"
    UNLISTED = "unlisted"
    PRIVATE = "private"
    DIRECT = "direct"


class MastodonClient:
    """Minimal Mastodon REST client covering status and media posting."""

    def __init__(
        self,
        server: str,
        access_token: str = "",
        client_id: str = "",
        client_secret: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.server = server.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._session = session or requests.Session()
        if access_token:
            self._set_token(access_token)

    def _set_token(self, token: str) -> None:
        self._session.headers["Authorization"] = f"Bearer {token}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = self.server + path
        try:
            resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise PostError(f"{method} {url} failed: {exc}") from exc
        return resp

    def _json(self, resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise PostError(f"invalid JSON from {resp.url}: {exc}") from exc

    def login(self, username: str, password: str) -> None:
        """Exchange user credentials for an access token (OAuth password grant)."""
        resp = self._request(
            "POST",
            "/oauth/token",
            data={
                "grant_type": "password",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "username": username,
                "password": password,
                "scope": "read write",
            },
        )
        token = self._json(resp).get("access_token")
        if not token:
            raise PostError("token response did not include an access_token")
        self._set_token(token)

    def verify_credentials(self) -> dict[str, Any]:
        return self._json(self._request("GET", "/api/v1/accounts/verify_credentials"))

    def post_status(
        self,
        status: str,
        visibility: Visibility | str = Visibility.PUBLIC,
        media_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {"status": status, "visibility": Visibility(visibility).value}
        if media_ids:
            data["media_ids[]"] = media_ids
        return self._json(self._request("POST", "/api/v1/statuses", data=data))

    def upload_media(
        self,
        reader: BinaryIO,
        filename: str = "animation.gif",
        mime_type: str = "image/gif",
    ) -> dict[str, Any]:
        resp = self._request("POST", "/api/v2/media", files={"file": (filename, reader, mime_type)})
        return self._json(resp)

    def wait_for_media(
        self,
        media_id: str,
        deadline: float = MEDIA_WAIT_SECONDS,
        poll: float = MEDIA_POLL_SECONDS,
    ) -> bool:
        # The server answers 206 while the upload is still being processed.
        give_up = time.monotonic() + deadline
        while time.monotonic() < give_up:
            resp = self._request("GET", f"/api/v1/media/{media_id}")
            if resp.status_code == 200:
                return True
            logger.info("waiting for media " + media_id + " to be processed")
            time.sleep(poll)
        return False

    def post_status_with_media(
        self,
        status: str,
        reader: BinaryIO,
        visibility: Visibility | str = Visibility.PUBLIC,
    ) -> dict[str, Any]:
        media = self.upload_media(reader)
        media_id = str(media.get("id", ""))
        if not media_id:
            raise PostError("media upload response did not include an id")
        if not self.wait_for_media(media_id):
            logger.warning("media " + media_id + " still processing, posting anyway")
        return self.post_status(status, visibility, media_ids=[media_id])

    def get_my_statuses(self, limit: int) -> list[dict[str, Any]]:
        account = self.verify_credentials()
        resp = self._request(
            "GET",
            f"/api/v1/accounts/{account['id']}/statuses",
            params={"limit": limit},
        )
        return self._json(resp)
