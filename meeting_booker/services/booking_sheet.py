# meeting_booker/services/booking_sheet.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from meeting_booker.schemas.booking import (
    BookingOverrides,
    RowRecord,
    RowState,
    ValidationOutcome,
)
from meeting_booker.services.completeness_validator import CompletenessValidator
from meeting_booker.services.header_resolver import (
    BookingColumn,
    ColumnSchema,
    build_sheet_header,
    resolve_columns,
)
from meeting_booker.services.row_normalizer import (
    BOOKED_MARKER,
    InvalidDateError,
    RowNormalizer,
)
from meeting_booker.services.workbook import BookingDocument

logger = logging.getLogger(__name__)


def apply_overrides(record: RowRecord, overrides: Optional[BookingOverrides]) -> RowRecord:
    """
    Return a copy of `record` with the global upload selections applied.
    An empty location does not override the row's own location.
    """
    if overrides is None:
        return record
    update: dict[str, Any] = {}
    if overrides.meeting_type is not None:
        update["meeting_type"] = overrides.meeting_type
    if overrides.location:
        update["location"] = overrides.location
    return record.model_copy(update=update) if update else record


@dataclass(frozen=True)
class Classification:
    """
    Result of reading one row: either a skip state or a validation outcome.
    """

    row_number: int
    state: Optional[RowState] = None
    outcome: Optional[ValidationOutcome] = None
    detail: str = ""

    @property
    def ready(self) -> bool:
        return self.state is None and self.outcome is not None and self.outcome.ready


class BookingSheet:
    """
    A bookings document bound to its resolved column schema.

    Reads rows as RowRecords and performs the two write-backs of a booking:
    the join URL and the 'Meeting Booked' flag.
    """

    def __init__(
        self,
        document: BookingDocument,
        schema: ColumnSchema,
        normalizer: RowNormalizer,
        first_data_row: int = 3,
    ) -> None:
        self.document = document
        self.schema = schema
        self.normalizer = normalizer
        self.first_data_row = first_data_row

    @classmethod
    def load(
        cls,
        document: BookingDocument,
        *,
        default_account: str | None,
        timezone: str = "Asia/Beirut",
        first_data_row: int = 3,
    ) -> "BookingSheet":
        """
        Resolve the header row of `document`.

        Raises
        ------
        MissingColumnsError
            If a required column is absent.
        """
        header = build_sheet_header(document.header_values())
        schema = resolve_columns(header)
        normalizer = RowNormalizer(schema, default_account=default_account, timezone=timezone)
        return cls(document, schema, normalizer, first_data_row=first_data_row)

    def rows(self) -> Iterator[tuple[int, list[Any]]]:
        """
        Data rows in document order; completely blank rows are skipped.
        """
        for row_number, values in self.document.iter_rows(self.first_data_row):
            if self.normalizer.is_blank(values):
                continue
            yield row_number, values

    def is_booked(self, row_number: int) -> bool:
        return self.normalizer.is_booked(self.document.row_values(row_number))

    def classify(
        self,
        row_number: int,
        values: list[Any],
        overrides: Optional[BookingOverrides] = None,
    ) -> Classification:
        """
        Decide whether a row is skipped (booked / invalid date) or validated.
        """
        if self.normalizer.is_booked(values):
            return Classification(row_number, state=RowState.SKIPPED_ALREADY_BOOKED)

        try:
            record = self.normalizer.normalize(row_number, values)
        except InvalidDateError as exc:
            return Classification(
                row_number,
                state=RowState.SKIPPED_INVALID_DATE,
                detail=str(exc),
            )

        outcome = CompletenessValidator.validate(apply_overrides(record, overrides))
        if outcome is None:
            return Classification(row_number, state=RowState.SKIPPED_ALREADY_BOOKED)
        return Classification(row_number, outcome=outcome)

    def ensure_join_url_column(self) -> int:
        position = self.schema.position(BookingColumn.JOIN_URL)
        if position is None:
            position = self.document.append_header(BookingColumn.JOIN_URL.value)
            self.schema = self.schema.with_position(BookingColumn.JOIN_URL, position)
        return position

    def mark_booked(self, row_number: int, join_url: Optional[str]) -> None:
        if join_url:
            self.document.write_cell(row_number, self.ensure_join_url_column(), join_url)
        booked_column = self.schema.position(BookingColumn.MEETING_BOOKED)
        if booked_column is None:
            # resolve_columns requires this column, so only a hand-built schema lands here.
            raise ValueError("Schema has no 'Meeting Booked' column to write to")
        self.document.write_cell(row_number, booked_column, BOOKED_MARKER)

    def save(self) -> None:
        self.document.save()
