# meeting_booker/services/header_resolver.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional


class MissingColumnsError(ValueError):
    """
    Raised when a required column is entirely absent from the header row.
    """

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Workbook is missing required column(s): {', '.join(missing)}")


class BookingColumn(str, Enum):
    """
    Logical columns of a bookings sheet, valued by their header label.
    """

    MEETING_NAME = "Meeting Name"
    DATE_CHOSEN = "Date Chosen"
    DURATION = "Length of Meeting(minutes)"
    INVITE_NAME = "Meeting Name For Invite"
    TEAM_INVITEES = "Team invitees"
    ADDED_INVITEE_1 = "Added Invitee 1"
    ADDED_INVITEE_2 = "Added Invitee 2"
    ADDED_INVITEE_3 = "Added Invitee 3"
    ADDED_INVITEE_4 = "Added Invitee 4"
    EMAIL_FROM_FORM = "Email from form"
    MEETING_BOOKED = "Meeting Booked"
    ZOOM_ACCOUNT = "Zoom Account to book from"
    TEAM_NAME = "Team Name"
    MEETING_TYPE = "Meeting Type"
    LOCATION = "Location"
    JOIN_URL = "JoinURL"

    @property
    def key(self) -> str:
        return normalize_header(self.value)


REQUIRED_COLUMNS: tuple[BookingColumn, ...] = (
    BookingColumn.MEETING_NAME,
    BookingColumn.DATE_CHOSEN,
    BookingColumn.MEETING_BOOKED,
)

# Order matters: participants are concatenated in this sequence.
INVITEE_COLUMNS: tuple[BookingColumn, ...] = (
    BookingColumn.TEAM_INVITEES,
    BookingColumn.ADDED_INVITEE_1,
    BookingColumn.ADDED_INVITEE_2,
    BookingColumn.ADDED_INVITEE_3,
    BookingColumn.ADDED_INVITEE_4,
    BookingColumn.EMAIL_FROM_FORM,
)


def normalize_header(value: Any) -> str:
    return str(value).strip().lower()


@dataclass(frozen=True)
class SheetHeader:
    """
    Case- and whitespace-insensitive name -> column index mapping.

    Indices are 1-based, matching worksheet columns.
    """

    columns: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", MappingProxyType(dict(self.columns)))

    def index_of(self, name: str) -> Optional[int]:
        return self.columns.get(normalize_header(name))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.index_of(name) is not None

    def __len__(self) -> int:
        return len(self.columns)


def build_sheet_header(values: Iterable[Any]) -> SheetHeader:
    """
    Build a SheetHeader from the raw values of the first row.

    Blank cells are skipped. When a name occurs twice the later column wins.
    """
    columns: dict[str, int] = {}
    for position, value in enumerate(values, start=1):
        if value is None:
            continue
        key = normalize_header(value)
        if key:
            columns[key] = position
    return SheetHeader(columns=columns)


@dataclass(frozen=True)
class ColumnSchema:
    """
    Resolved positions of every logical column present in a sheet.

    Optional columns that are absent resolve to None and read as empty.
    """

    header: SheetHeader
    positions: Mapping[BookingColumn, Optional[int]]

    def position(self, column: BookingColumn) -> Optional[int]:
        return self.positions.get(column)

    def with_position(self, column: BookingColumn, position: int) -> "ColumnSchema":
        positions = dict(self.positions)
        positions[column] = position
        return ColumnSchema(header=self.header, positions=MappingProxyType(positions))


def resolve_columns(
    header: SheetHeader,
    required: Iterable[BookingColumn] = REQUIRED_COLUMNS,
) -> ColumnSchema:
    """
    Resolve every BookingColumn against the header.

    Raises
    ------
    MissingColumnsError
        If any required column is absent. All absent required columns are
        listed, not only the first one.
    """
    positions = {column: header.index_of(column.value) for column in BookingColumn}
    missing = [column.value for column in required if positions[column] is None]
    if missing:
        raise MissingColumnsError(missing)
    return ColumnSchema(header=header, positions=MappingProxyType(positions))
