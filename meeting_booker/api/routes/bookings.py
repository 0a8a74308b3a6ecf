# meeting_booker/api/routes/bookings.py
import logging
import uuid
from http import HTTPStatus
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from meeting_booker.api.dependencies.api_key import verify_booking_api_key
from meeting_booker.core.config import get_settings
from meeting_booker.schemas.booking import BookingBatchResult, BookingOverrides, MeetingType
from meeting_booker.schemas.session import ProcessRequest, ValidationSummary
from meeting_booker.services import booking_service
from meeting_booker.services.header_resolver import MissingColumnsError
from meeting_booker.services.oauth_client import ApiClientError
from meeting_booker.services.session_store import SessionExpiredError
from meeting_booker.services.workbook import DocumentError

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Bookings"],
    dependencies=[Depends(verify_booking_api_key)],
)

ALLOWED_SUFFIXES = (".xlsx",)


def _store_upload(filename: str, content: bytes) -> Path:
    upload_dir = Path(get_settings().UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    target = upload_dir / f"{uuid.uuid4().hex}{Path(filename).suffix.lower()}"
    target.write_bytes(content)
    return target


@router.post(
    "/upload",
    response_model=ValidationSummary,
    status_code=HTTPStatus.OK,
    summary="Validate a bookings workbook",
    description=(
        "Upload a Doodle bookings workbook (`.xlsx`, sheet **Bookings**).\n\n"
        "Rows are read and validated only: no Zoom meeting is created and no "
        "invitation is sent. The response carries a `session_id` to pass to "
        "`/process`, the rows that will be sent and, for incomplete rows, the "
        "exact essential fields that are missing.\n\n"
        "Already booked rows and rows whose date cannot be read are left out."
    ),
    responses={
        400: {"description": "File is not a readable bookings workbook."},
        401: {"description": "Missing or invalid booking API key (if configured)."},
    },
)
async def upload_workbook(
    sheet: UploadFile = File(..., description="Doodle bookings workbook (.xlsx)."),
    meeting_type: MeetingType = Form(
        MeetingType.ZOOM,
        description="Meeting type applied to every row.",
    ),
    location: str = Form("", description="Location applied to every row (in-person)."),
) -> ValidationSummary:
    """
    Validate phase of the two-step upload protocol.
    """
    filename = sheet.filename or "upload.xlsx"
    if not filename.lower().endswith(ALLOWED_SUFFIXES):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Only .xlsx workbooks are supported.",
        )

    stored = _store_upload(filename, await sheet.read())
    overrides = BookingOverrides(meeting_type=meeting_type, location=location or None)

    try:
        _, summary = booking_service.validate_upload(stored, overrides)
    except (DocumentError, MissingColumnsError) as exc:
        logger.warning("Rejected upload %s: %s", filename, exc)
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc))

    logger.info(
        "Validated upload %s: %d row(s) to send, %d ready",
        filename,
        summary.total_to_send,
        summary.ready_count,
    )
    return summary


@router.post(
    "/process",
    response_model=BookingBatchResult,
    status_code=HTTPStatus.OK,
    summary="Book the rows of a validated upload",
    description=(
        "Commit phase: provisions a Zoom meeting (unless in-person), marks the row "
        "booked in the uploaded workbook and sends the Outlook invitation for every "
        "ready row of the session.\n\n"
        "A session can be committed once. Unknown, expired or already committed "
        "sessions are rejected with 400."
    ),
    responses={
        400: {
            "description": "Session expired or unknown.",
            "content": {
                "application/json": {
                    "example": {"detail": "Session expired. Please re-upload."}
                }
            },
        },
        401: {"description": "Missing or invalid booking API key (if configured)."},
        503: {"description": "Zoom or Graph is not configured."},
    },
)
async def process_upload(payload: ProcessRequest) -> BookingBatchResult:
    """
    Commit phase of the two-step upload protocol.
    """
    overrides = BookingOverrides(
        meeting_type=payload.meeting_type,
        location=payload.location or None,
    )
    try:
        return await booking_service.commit_upload(payload.session_id, overrides)
    except SessionExpiredError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc))
    except (DocumentError, MissingColumnsError) as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc))
    except ApiClientError as exc:
        logger.error("Cannot process session %s: %s", payload.session_id, exc)
        raise HTTPException(status_code=HTTPStatus.SERVICE_UNAVAILABLE, detail=str(exc))
