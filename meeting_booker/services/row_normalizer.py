# meeting_booker/services/row_normalizer.py
from __future__ import annotations

import math
import re
from datetime import date, datetime, time
from typing import Any, Optional, Sequence
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser

from meeting_booker.schemas.booking import MeetingType, RowRecord
from meeting_booker.services.header_resolver import (
    INVITEE_COLUMNS,
    BookingColumn,
    ColumnSchema,
)

DEFAULT_DURATION_MINUTES = 60
BOOKED_MARKER = "yes"

_EMAIL_SEPARATORS = re.compile(r"[,;]")
_IN_PERSON_ALIASES = {"in-person", "in person", "inperson"}


class InvalidDateError(ValueError):
    """
    Raised when a row's 'Date Chosen' text cannot be read as a date/time.
    """

    def __init__(self, row_number: int, text: str) -> None:
        self.row_number = row_number
        self.text = text
        super().__init__(f"Row {row_number}: invalid or missing date: {text!r}")


def cell_text(value: Any) -> str:
    """
    Render a raw cell value the way it reads in the sheet.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_emails(text: str | None) -> list[str]:
    """
    Split on commas or semicolons, trim, and drop empty entries.
    """
    return [part.strip() for part in _EMAIL_SEPARATORS.split(text or "") if part.strip()]


def parse_duration(value: Any) -> int:
    """
    Whole minutes, or 60 when the value is not a finite positive number.
    """
    if isinstance(value, bool) or value is None:
        return DEFAULT_DURATION_MINUTES
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_DURATION_MINUTES
    if not math.isfinite(number) or int(number) <= 0:
        return DEFAULT_DURATION_MINUTES
    return int(number)


def parse_meeting_type(text: str | None) -> MeetingType:
    normalized = (text or "").strip().lower()
    if normalized in _IN_PERSON_ALIASES:
        return MeetingType.IN_PERSON
    return MeetingType.ZOOM


def parse_start(value: Any, tz: ZoneInfo) -> Optional[datetime]:
    """
    Interpret a 'Date Chosen' cell as wall-clock time in `tz`.

    Returns None for an empty cell.

    Raises
    ------
    ValueError
        If the value is present but not a recognizable date/time.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = cell_text(value)
        if not text:
            return None
        try:
            parsed = date_parser.parse(text)
        except (date_parser.ParserError, OverflowError) as exc:
            raise ValueError(str(exc)) from exc

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


class RowNormalizer:
    """
    Reads one physical worksheet row into a RowRecord.

    Columns that are absent from the sheet read as empty values.
    """

    def __init__(
        self,
        schema: ColumnSchema,
        default_account: str | None,
        timezone: str = "Asia/Beirut",
    ) -> None:
        self.schema = schema
        self.default_account = default_account or ""
        self.tz = ZoneInfo(timezone)

    def _raw(self, values: Sequence[Any], column: BookingColumn) -> Any:
        position = self.schema.position(column)
        if position is None or position > len(values):
            return None
        return values[position - 1]

    def _text(self, values: Sequence[Any], column: BookingColumn) -> str:
        return cell_text(self._raw(values, column))

    def is_blank(self, values: Sequence[Any]) -> bool:
        return all(cell_text(v) == "" for v in values)

    def is_booked(self, values: Sequence[Any]) -> bool:
        return self._text(values, BookingColumn.MEETING_BOOKED).lower() == BOOKED_MARKER

    def normalize(self, row_number: int, values: Sequence[Any]) -> RowRecord:
        """
        Build the RowRecord for `values`.

        Raises
        ------
        InvalidDateError
            If 'Date Chosen' holds text that cannot be parsed. An empty
            date is not an error; it is reported later as a missing field.
        """
        raw_date = self._raw(values, BookingColumn.DATE_CHOSEN)
        try:
            start = parse_start(raw_date, self.tz)
        except ValueError as exc:
            raise InvalidDateError(row_number, cell_text(raw_date)) from exc

        topic = self._text(values, BookingColumn.MEETING_NAME)
        participants = parse_emails(
            ",".join(self._text(values, column) for column in INVITEE_COLUMNS)
        )

        return RowRecord(
            row_number=row_number,
            team=self._text(values, BookingColumn.TEAM_INVITEES),
            team_name=self._text(values, BookingColumn.TEAM_NAME),
            topic=topic,
            agenda=self._text(values, BookingColumn.INVITE_NAME) or topic,
            date_text=cell_text(raw_date),
            scheduled_start=start,
            duration_minutes=parse_duration(self._raw(values, BookingColumn.DURATION)),
            provisioning_account=(
                self._text(values, BookingColumn.ZOOM_ACCOUNT) or self.default_account
            ),
            meeting_type=parse_meeting_type(self._text(values, BookingColumn.MEETING_TYPE)),
            location=self._text(values, BookingColumn.LOCATION),
            participants=tuple(participants),
            already_booked=self.is_booked(values),
        )
