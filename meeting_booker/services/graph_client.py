# meeting_booker/services/graph_client.py
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from meeting_booker.core.config import get_settings
from meeting_booker.services.oauth_client import ApiClientError, OAuthApiClient


class GraphClientError(ApiClientError):
    """
    Raised when the GraphClient cannot obtain an access token or when a
    Graph API call fails.
    """


class GraphClient(OAuthApiClient):
    """
    Minimal Microsoft Graph API client using the client-credentials flow.

    Used to post calendar events on behalf of the organizer mailbox and to
    check that the tenant credentials work.
    """

    error_cls = GraphClientError
    service_name = "Graph"

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        base_url: str = "https://graph.microsoft.com",
        scope: str = "https://graph.microsoft.com/.default",
        timeout_seconds: float = 10.0,
    ) -> None:
        if not tenant_id or not client_id or not client_secret:
            raise ValueError("tenant_id, client_id and client_secret are required")

        super().__init__(base_url=base_url, timeout_seconds=timeout_seconds)
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._scope = scope

    @property
    def token_url(self) -> str:
        """
        Returns the OAuth2 token endpoint for the configured tenant.
        """
        return f"https://login.microsoftonline.com/{self._tenant_id}/oauth2/v2.0/token"

    async def _token_request(self, client: httpx.AsyncClient) -> httpx.Response:
        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "client_credentials",
            "scope": self._scope,
        }
        return await client.post(self.token_url, data=data)

    async def create_event(self, mailbox: str, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create `event` in `mailbox`'s calendar. Graph sends the invitations
        to every attendee listed in the payload.
        """
        return await self.post_json(f"/v1.0/users/{mailbox}/events", json=event)

    async def get_organization_name(self) -> Optional[str]:
        """
        Display name of the tenant, used as a credentials smoke test.
        """
        payload = await self.get_json(
            "/v1.0/organization",
            params={"$select": "displayName"},
        )
        orgs = payload.get("value") or []
        if not orgs:
            return None
        return orgs[0].get("displayName")


_graph_client_instance: Optional[GraphClient] = None


def get_graph_client() -> GraphClient:
    """
    Lazily construct the shared GraphClient from application settings.
    """
    global _graph_client_instance
    if _graph_client_instance is None:
        settings = get_settings()
        if not settings.GRAPH_TENANT_ID or not settings.GRAPH_CLIENT_ID or not settings.GRAPH_CLIENT_SECRET:
            raise GraphClientError(
                "GRAPH_TENANT_ID, GRAPH_CLIENT_ID and GRAPH_CLIENT_SECRET must be "
                "configured to send calendar invitations."
            )
        _graph_client_instance = GraphClient(
            tenant_id=settings.GRAPH_TENANT_ID,
            client_id=settings.GRAPH_CLIENT_ID,
            client_secret=settings.GRAPH_CLIENT_SECRET,
            base_url=str(settings.GRAPH_BASE_URL or "https://graph.microsoft.com"),
        )
    return _graph_client_instance
