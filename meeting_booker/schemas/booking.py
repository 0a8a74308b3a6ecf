# meeting_booker/schemas/booking.py
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class MeetingType(str, Enum):
    """
    How a meeting takes place. Only Zoom meetings are provisioned.
    """

    ZOOM = "zoom"
    IN_PERSON = "in-person"


class RowState(str, Enum):
    """
    States a single row passes through during a booking run.

    Terminal states are the SKIPPED_* values, BOOKED, BOOKED_NOT_INVITED
    and FAILED. The remaining values are only observed in logs.
    """

    SKIPPED_ALREADY_BOOKED = "SKIPPED_ALREADY_BOOKED"
    SKIPPED_INCOMPLETE = "SKIPPED_INCOMPLETE"
    SKIPPED_INVALID_DATE = "SKIPPED_INVALID_DATE"
    PROVISIONING = "PROVISIONING"
    PROVISIONED = "PROVISIONED"
    INVITING = "INVITING"
    BOOKED = "BOOKED"
    BOOKED_NOT_INVITED = "BOOKED_NOT_INVITED"
    FAILED = "FAILED"


class RowRecord(BaseModel):
    """
    One proposed meeting read from a single worksheet row.

    Records are rebuilt on every read and never mutated; booking results
    are written to the workbook and reported through RowOutcome instead.
    """

    model_config = ConfigDict(frozen=True)

    row_number: int = Field(..., description="1-based worksheet row.", examples=[3])
    team: str = Field("", description="Raw 'Team invitees' cell text.")
    team_name: str = Field(
        "",
        description="Team name used verbatim in the invitation greeting.",
        examples=["Cedar Labs"],
    )
    topic: str = Field("", description="Meeting name / invite subject.", examples=["Sync"])
    agenda: str = Field("", description="Zoom agenda ('Meeting Name For Invite').")
    date_text: str = Field("", description="Raw 'Date Chosen' text as read from the sheet.")
    scheduled_start: datetime | None = Field(
        None,
        description="Start instant in the booking time zone, None when no date was given.",
    )
    duration_minutes: int = Field(60, gt=0, description="Meeting length in minutes.")
    provisioning_account: str = Field(
        "",
        description="Zoom user the meeting is booked from.",
        examples=["host@example.com"],
    )
    meeting_type: MeetingType = Field(MeetingType.ZOOM)
    location: str = Field("", description="Free-text location for in-person meetings.")
    participants: tuple[str, ...] = Field(
        (),
        description="Attendee addresses in column order, not deduplicated.",
    )
    already_booked: bool = Field(
        False,
        description="True when the 'Meeting Booked' cell reads 'yes'.",
    )


class ValidationOutcome(BaseModel):
    """
    A normalized row together with the essential fields it is missing.
    """

    model_config = ConfigDict(frozen=True)

    record: RowRecord
    missing: tuple[str, ...] = Field(
        (),
        description="Labels of empty essential fields, in a fixed order.",
        examples=[["Date Chosen"]],
    )

    @computed_field
    @property
    def ready(self) -> bool:
        return not self.missing


class BookingOverrides(BaseModel):
    """
    Global selections from the upload form applied to every committed row.
    """

    model_config = ConfigDict(frozen=True)

    meeting_type: MeetingType | None = None
    location: str | None = None


class RowOutcome(BaseModel):
    """
    Terminal result for one row of a booking run.
    """

    row_number: int
    topic: str = ""
    state: RowState
    join_url: str | None = None
    error: str | None = None


class BookingFailure(BaseModel):
    """
    A failed row and the reason it failed.
    """

    row: RowRecord
    error: str
    state: RowState = RowState.FAILED


class BookingBatchResult(BaseModel):
    """
    Aggregate result of one orchestrator run.
    """

    sent: int = Field(0, description="Rows provisioned, written back and invited.", examples=[2])
    failed: int = Field(0, description="Rows that ended in FAILED or BOOKED_NOT_INVITED.", examples=[1])
    skipped: int = Field(0, description="Rows skipped before any external call.", examples=[0])
    failures: list[BookingFailure] = Field(default_factory=list)
    outcomes: list[RowOutcome] = Field(default_factory=list)
