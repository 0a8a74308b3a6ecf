# meeting_booker/services/oauth_client.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class ApiClientError(RuntimeError):
    """
    Base error for the Zoom and Graph HTTP clients.

    `transient` marks failures worth retrying: network errors and
    throttling/server-side statuses.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient


@dataclass
class _TokenState:
    access_token: str
    expires_at: datetime


class OAuthApiClient:
    """
    Shared plumbing for JSON APIs authenticated with a client-credentials
    style bearer token.

    Subclasses implement `_token_request()` and set `error_cls`.

    Notes
    -----
    - The token is cached in memory and reused until shortly before expiry,
      so one token serves a whole booking batch.
    - Every transport error or non-2xx response is raised as `error_cls`.
    """

    error_cls: type[ApiClientError] = ApiClientError
    service_name: str = "API"

    # Refresh slightly before the real expiry.
    token_safety_margin_seconds: int = 60

    def __init__(self, base_url: str, timeout_seconds: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._token_state: Optional[_TokenState] = None

    async def _token_request(self, client: httpx.AsyncClient) -> httpx.Response:
        raise NotImplementedError

    async def _fetch_token(self) -> _TokenState:
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                resp = await self._token_request(client)
        except httpx.HTTPError as exc:
            raise self.error_cls(
                f"Failed to reach {self.service_name} token endpoint: {exc}",
                transient=True,
            ) from exc

        if resp.status_code != 200:
            raise self.error_cls(
                f"Failed to obtain {self.service_name} token "
                f"(status={resp.status_code}): {resp.text}",
                status_code=resp.status_code,
                transient=resp.status_code in TRANSIENT_STATUS_CODES,
            )

        payload = self._decode(resp, "token")
        access_token = payload.get("access_token")
        expires_in = payload.get("expires_in")

        if not access_token or not isinstance(expires_in, (int, float)):
            raise self.error_cls(
                f"Invalid token response from {self.service_name} "
                "(missing access_token/expires_in)"
            )

        now = datetime.now(tz=timezone.utc)
        expires_at = now + timedelta(
            seconds=float(expires_in) - self.token_safety_margin_seconds
        )
        logger.debug("Obtained %s token valid until %s", self.service_name, expires_at)
        return _TokenState(access_token=access_token, expires_at=expires_at)

    async def get_access_token(self) -> str:
        """
        Return a valid access token, fetching a new one only when none is
        cached or the cached one is about to expire.
        """
        now = datetime.now(tz=timezone.utc)
        if self._token_state and self._token_state.expires_at > now:
            return self._token_state.access_token

        self._token_state = await self._fetch_token()
        return self._token_state.access_token

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        token = await self.get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                return await client.request(
                    method=method.upper(),
                    url=self._url(path),
                    headers=headers,
                    params=params,
                    json=json,
                )
        except httpx.HTTPError as exc:
            raise self.error_cls(
                f"{self.service_name} {method.upper()} {path} failed: {exc}",
                transient=True,
            ) from exc

    def _check(self, resp: httpx.Response, method: str) -> Dict[str, Any]:
        if resp.status_code // 100 != 2:
            raise self.error_cls(
                f"{self.service_name} {method} failed (status={resp.status_code}): {resp.text}",
                status_code=resp.status_code,
                transient=resp.status_code in TRANSIENT_STATUS_CODES,
            )
        # 202/204 responses may carry no body.
        if not resp.content:
            return {}
        return self._decode(resp, method)

    def _decode(self, resp: httpx.Response, what: str) -> Dict[str, Any]:
        """
        Parse a JSON object body. Anything else (an HTML gateway page, a
        bare list) is raised as `error_cls` so callers only see typed errors.
        """
        try:
            payload = resp.json()
        except ValueError as exc:
            raise self.error_cls(
                f"Invalid JSON from {self.service_name} {what} "
                f"(status={resp.status_code}): {exc}",
                status_code=resp.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise self.error_cls(
                f"Unexpected {self.service_name} {what} response "
                f"(status={resp.status_code}): expected a JSON object",
                status_code=resp.status_code,
            )
        return payload

    async def get_json(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        resp = await self._request("GET", path, params=params)
        return self._check(resp, "GET")

    async def post_json(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Dict[str, Any]:
        resp = await self._request("POST", path, params=params, json=json)
        return self._check(resp, "POST")
