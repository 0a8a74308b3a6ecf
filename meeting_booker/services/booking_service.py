# meeting_booker/services/booking_service.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from meeting_booker.core.config import get_settings
from meeting_booker.schemas.booking import (
    BookingBatchResult,
    BookingOverrides,
    RowState,
)
from meeting_booker.schemas.session import UploadSession, ValidationSummary
from meeting_booker.services.booking_orchestrator import BookingOrchestrator
from meeting_booker.services.booking_sheet import BookingSheet
from meeting_booker.services.completeness_validator import CompletenessValidator
from meeting_booker.services.graph_client import GraphClientError, get_graph_client
from meeting_booker.services.invite_composer import InviteComposer
from meeting_booker.services.retry import RetryPolicy
from meeting_booker.services.session_store import ValidationSessionStore, get_session_store
from meeting_booker.services.workbook import BookingWorkbook
from meeting_booker.services.zoom_client import get_zoom_provisioner

logger = logging.getLogger(__name__)


def build_orchestrator() -> BookingOrchestrator:
    """
    Wire the orchestrator to the shared Zoom and Graph clients.

    Raises
    ------
    ProvisioningError / GraphClientError
        If the corresponding credentials or the organizer mailbox are not
        configured.
    """
    settings = get_settings()
    if not settings.OUTLOOK_HOST:
        raise GraphClientError("OUTLOOK_HOST must be configured to send calendar invitations.")

    composer = InviteComposer(
        get_graph_client(),
        timezone_name=settings.BOOKING_TIMEZONE,
        sign_off=settings.INVITE_SIGN_OFF,
    )
    return BookingOrchestrator(
        provisioner=get_zoom_provisioner(),
        composer=composer,
        calendar_host=settings.OUTLOOK_HOST,
        retry_policy=RetryPolicy(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay_seconds=settings.RETRY_BASE_DELAY_SECONDS,
        ),
    )


def open_sheet(path: str | Path) -> BookingSheet:
    """
    Open the bookings workbook at `path` and resolve its columns.

    Raises
    ------
    DocumentError
        If the workbook or its bookings sheet cannot be opened.
    MissingColumnsError
        If a required column is absent.
    """
    settings = get_settings()
    document = BookingWorkbook.open(path, settings.WORKSHEET_NAME)
    return BookingSheet.load(
        document,
        default_account=settings.default_provisioning_account,
        timezone=settings.BOOKING_TIMEZONE,
        first_data_row=settings.FIRST_DATA_ROW,
    )


async def run_booking_batch(
    path: str | Path,
    orchestrator: Optional[BookingOrchestrator] = None,
) -> BookingBatchResult:
    """
    Book every eligible row of the workbook at `path` and save it in place.
    """
    sheet = open_sheet(path)
    if orchestrator is None:
        orchestrator = build_orchestrator()

    result = await orchestrator.run(sheet)
    logger.info(
        "Batch %s finished: sent=%d failed=%d skipped=%d",
        path,
        result.sent,
        result.failed,
        result.skipped,
    )
    return result


def validate_upload(
    path: str | Path,
    overrides: Optional[BookingOverrides] = None,
    store: Optional[ValidationSessionStore] = None,
) -> tuple[UploadSession, ValidationSummary]:
    """
    Validate phase of an interactive upload.

    Reads and validates every row without touching Zoom or Graph, stores
    the snapshot and returns its handle with a summary for review.
    Already booked rows and rows with an unreadable date are left out.
    """
    if store is None:
        store = get_session_store()

    sheet = open_sheet(path)
    outcomes = []
    rows_filled = 0

    for row_number, values in sheet.rows():
        classification = sheet.classify(row_number, values, overrides)
        if classification.state == RowState.SKIPPED_INVALID_DATE:
            logger.warning("Skipping %s", classification.detail)
            rows_filled += 1
            continue
        if classification.state == RowState.SKIPPED_ALREADY_BOOKED:
            rows_filled += 1
            continue

        outcome = classification.outcome
        if outcome is None:
            continue
        if CompletenessValidator.has_any_essential(outcome.record):
            rows_filled += 1
        outcomes.append(outcome)

    session = store.put(outcomes, document_path=str(path), overrides=overrides)
    ready_count = len(session.ready_outcomes)
    summary = ValidationSummary(
        session_id=session.handle.session_id,
        expires_at=session.handle.expires_at,
        rows_filled=rows_filled,
        total_to_send=len(outcomes),
        ready_count=ready_count,
        can_send=ready_count == len(outcomes),
        outcomes=list(outcomes),
    )
    return session, summary


def merge_overrides(
    requested: Optional[BookingOverrides],
    stored: BookingOverrides,
) -> BookingOverrides:
    if requested is None:
        return stored
    return BookingOverrides(
        meeting_type=requested.meeting_type or stored.meeting_type,
        location=requested.location or stored.location,
    )


async def commit_upload(
    session_id: str,
    overrides: Optional[BookingOverrides] = None,
    store: Optional[ValidationSessionStore] = None,
    orchestrator: Optional[BookingOrchestrator] = None,
) -> BookingBatchResult:
    """
    Commit phase of an interactive upload.

    Raises
    ------
    SessionExpiredError
        If the session is unknown, expired or already committed.
    """
    if store is None:
        store = get_session_store()

    if orchestrator is None:
        orchestrator = build_orchestrator()

    session = store.consume(session_id)
    sheet = open_sheet(session.document_path)

    result = await orchestrator.commit(
        sheet,
        session.ready_outcomes,
        merge_overrides(overrides, session.overrides),
    )
    logger.info(
        "Session %s committed: sent=%d failed=%d",
        session_id,
        result.sent,
        result.failed,
    )
    return result
