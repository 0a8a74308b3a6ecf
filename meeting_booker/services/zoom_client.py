# meeting_booker/services/zoom_client.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from meeting_booker.core.config import get_settings
from meeting_booker.services.oauth_client import ApiClientError, OAuthApiClient

logger = logging.getLogger(__name__)

ZOOM_TOKEN_URL = "https://zoom.us/oauth/token"
SCHEDULED_MEETING = 2


class ProvisioningError(ApiClientError):
    """
    Raised when a Zoom token cannot be obtained or a meeting cannot be created.
    """


class ZoomClient(OAuthApiClient):
    """
    Zoom REST client using server-to-server OAuth (account_credentials grant).
    """

    error_cls = ProvisioningError
    service_name = "Zoom"

    def __init__(
        self,
        account_id: str,
        client_id: str,
        client_secret: str,
        base_url: str = "https://api.zoom.us/v2",
        token_url: str = ZOOM_TOKEN_URL,
        timeout_seconds: float = 10.0,
    ) -> None:
        if not account_id or not client_id or not client_secret:
            raise ValueError("account_id, client_id and client_secret are required")

        super().__init__(base_url=base_url, timeout_seconds=timeout_seconds)
        self._account_id = account_id
        self._client_id = client_id
        self._client_secret = client_secret
        self.token_url = token_url

    async def _token_request(self, client: httpx.AsyncClient) -> httpx.Response:
        return await client.post(
            self.token_url,
            params={"grant_type": "account_credentials", "account_id": self._account_id},
            auth=(self._client_id, self._client_secret),
        )

    async def create_meeting(self, user: str, meeting: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post_json(f"/users/{user}/meetings", json=meeting)


class ZoomProvisioner:
    """
    Creates the hosted meeting for a row and returns its join URL.

    The underlying client caches its token, so a single provisioner reuses
    one token for every row of a batch.
    """

    def __init__(self, client: ZoomClient, timezone: str = "Asia/Beirut") -> None:
        self.client = client
        self.timezone = timezone

    async def provision(
        self,
        topic: str,
        start: datetime,
        duration_minutes: int,
        agenda: str,
        account: str,
    ) -> Optional[str]:
        """
        Create a scheduled meeting hosted by `account`.

        `start` is sent as wall-clock time together with the booking zone.

        Raises
        ------
        ProvisioningError
            On any transport failure, non-2xx response, or a response
            without a join URL.
        """
        payload = {
            "topic": topic,
            "type": SCHEDULED_MEETING,
            "start_time": start.strftime("%Y-%m-%dT%H:%M:%S"),
            "duration": duration_minutes,
            "timezone": self.timezone,
            "agenda": agenda,
        }
        meeting = await self.client.create_meeting(account, payload)

        join_url = meeting.get("join_url")
        if not join_url:
            raise ProvisioningError(
                f"Zoom meeting for '{topic}' was created without a join_url"
            )
        logger.debug("Provisioned Zoom meeting %s for '%s'", meeting.get("id"), topic)
        return join_url


_zoom_provisioner_instance: Optional[ZoomProvisioner] = None


def get_zoom_provisioner() -> ZoomProvisioner:
    """
    Lazily construct the shared ZoomProvisioner from application settings.
    """
    global _zoom_provisioner_instance
    if _zoom_provisioner_instance is None:
        settings = get_settings()
        if not settings.ZOOM_ACCOUNT_ID or not settings.ZOOM_CLIENT_ID or not settings.ZOOM_CLIENT_SECRET:
            raise ProvisioningError(
                "ZOOM_ACCOUNT_ID, ZOOM_CLIENT_ID and ZOOM_CLIENT_SECRET must be "
                "configured to provision Zoom meetings."
            )
        client = ZoomClient(
            account_id=settings.ZOOM_ACCOUNT_ID,
            client_id=settings.ZOOM_CLIENT_ID,
            client_secret=settings.ZOOM_CLIENT_SECRET,
            base_url=str(settings.ZOOM_BASE_URL or "https://api.zoom.us/v2"),
        )
        _zoom_provisioner_instance = ZoomProvisioner(client, timezone=settings.BOOKING_TIMEZONE)
    return _zoom_provisioner_instance
