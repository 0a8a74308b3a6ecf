# meeting_booker/services/invite_composer.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from html import escape
from typing import Any, Dict, Optional, Sequence
from zoneinfo import ZoneInfo

from meeting_booker.schemas.booking import MeetingType, RowRecord
from meeting_booker.services.graph_client import GraphClient, GraphClientError
from meeting_booker.services.oauth_client import ApiClientError

logger = logging.getLogger(__name__)

GRAPH_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"
BODY_DATETIME_FORMAT = "%Y-%m-%d %H:%M"


class InviteDispatchError(ApiClientError):
    """
    Raised when the calendar invitation for a row could not be posted.
    """


def display_location(row: RowRecord) -> str:
    """
    Location shown to attendees: the row's own text, else a default
    matching the meeting type.
    """
    if row.location:
        return row.location
    if row.meeting_type == MeetingType.IN_PERSON:
        return "In person"
    return "Zoom"


def meeting_window(row: RowRecord, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """
    Start and end of the meeting in `tz`. The end is computed on absolute
    time, so day and DST boundaries are handled.
    """
    if row.scheduled_start is None:
        raise ValueError(f"Row {row.row_number} has no start time")
    start = row.scheduled_start.astimezone(tz)
    end_utc = start.astimezone(timezone.utc) + timedelta(minutes=row.duration_minutes)
    return start, end_utc.astimezone(tz)


class InviteComposer:
    """
    Builds the Outlook calendar event for a booked row and posts it through
    Microsoft Graph on behalf of the organizer mailbox.
    """

    def __init__(
        self,
        graph_client: GraphClient,
        timezone_name: str = "Asia/Beirut",
        sign_off: str = "Berytech Team",
    ) -> None:
        self.graph = graph_client
        self.timezone_name = timezone_name
        self.tz = ZoneInfo(timezone_name)
        self.sign_off = sign_off

    def build_body(self, row: RowRecord, join_url: Optional[str]) -> str:
        start, _ = meeting_window(row, self.tz)
        if join_url:
            link = escape(join_url, quote=True)
            location_line = f'<br>Zoom Link: <a href="{link}">{link}</a><br>'
        else:
            location_line = f"<br>Location: {escape(display_location(row))}<br>"

        return (
            f"Dear {escape(row.team_name)},<br>"
            "You are invited to a meeting for your team.<br>"
            f"Meeting Day & Time: {start.strftime(BODY_DATETIME_FORMAT)}"
            f"{location_line}"
            f"<br>Best regards,<br>{escape(self.sign_off)}"
        )

    def build_event(
        self,
        row: RowRecord,
        join_url: Optional[str],
        recipients: Sequence[str],
    ) -> Dict[str, Any]:
        start, end = meeting_window(row, self.tz)
        return {
            "subject": row.topic,
            "body": {
                "contentType": "HTML",
                "content": self.build_body(row, join_url),
            },
            "start": {
                "dateTime": start.strftime(GRAPH_DATETIME_FORMAT),
                "timeZone": self.timezone_name,
            },
            "end": {
                "dateTime": end.strftime(GRAPH_DATETIME_FORMAT),
                "timeZone": self.timezone_name,
            },
            "location": {"displayName": display_location(row)},
            "attendees": [
                {"type": "required", "emailAddress": {"address": address}}
                for address in recipients
            ],
        }

    async def compose_and_send(
        self,
        row: RowRecord,
        join_url: Optional[str],
        recipients: Sequence[str],
        calendar_host: str,
    ) -> None:
        """
        Post one invitation. No duplicate guard lives here; callers must not
        invoke this twice for the same row.

        Raises
        ------
        InviteDispatchError
            If Graph rejects the event or cannot be reached.
        """
        event = self.build_event(row, join_url, recipients)
        try:
            await self.graph.create_event(calendar_host, event)
        except GraphClientError as exc:
            raise InviteDispatchError(
                f"Invite for '{row.topic}' could not be sent: {exc}",
                status_code=exc.status_code,
                transient=exc.transient,
            ) from exc
        logger.debug(
            "Invite for row %d sent to %d attendee(s)", row.row_number, len(recipients)
        )
