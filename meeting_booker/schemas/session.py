# meeting_booker/schemas/session.py
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from meeting_booker.schemas.booking import BookingOverrides, MeetingType, ValidationOutcome


class SessionHandle(BaseModel):
    """
    Opaque reference to a validated upload awaiting commit.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str = Field(..., description="Random, URL-safe identifier.")
    expires_at: datetime = Field(..., description="Instant after which commit is refused.")


class UploadSession(BaseModel):
    """
    Immutable snapshot of what the user reviewed during validation.
    """

    model_config = ConfigDict(frozen=True)

    handle: SessionHandle
    document_path: str = Field(..., description="Stored workbook the commit writes back to.")
    outcomes: tuple[ValidationOutcome, ...] = ()
    overrides: BookingOverrides = BookingOverrides()

    @property
    def ready_outcomes(self) -> tuple[ValidationOutcome, ...]:
        return tuple(o for o in self.outcomes if o.ready)


class ValidationSummary(BaseModel):
    """
    Response of the validate phase.
    """

    session_id: str
    expires_at: datetime
    rows_filled: int = Field(
        ...,
        description="Rows with at least one essential value, booked or not.",
        examples=[4],
    )
    total_to_send: int = Field(
        ...,
        description="Unbooked rows found in the workbook (ready or not).",
        examples=[3],
    )
    ready_count: int = Field(..., description="Rows that will be booked on commit.", examples=[2])
    can_send: bool = Field(
        ...,
        description="False when any unbooked row is missing an essential field.",
    )
    outcomes: list[ValidationOutcome]


class ProcessRequest(BaseModel):
    """
    Body of the commit phase.
    """

    session_id: str = Field(..., description="Identifier returned by the upload step.")
    meeting_type: MeetingType | None = Field(
        None,
        description="Overrides every row's meeting type when set.",
        examples=["zoom"],
    )
    location: str | None = Field(
        None,
        description="Overrides every row's location when set.",
        examples=["Beirut Digital District, Building 1"],
    )
