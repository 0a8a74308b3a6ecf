# meeting_booker/services/booking_orchestrator.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

from meeting_booker.schemas.booking import (
    BookingBatchResult,
    BookingFailure,
    BookingOverrides,
    MeetingType,
    RowOutcome,
    RowRecord,
    RowState,
    ValidationOutcome,
)
from meeting_booker.services.booking_sheet import BookingSheet, Classification, apply_overrides
from meeting_booker.services.invite_composer import InviteDispatchError
from meeting_booker.services.retry import NO_RETRY, RetryPolicy
from meeting_booker.services.zoom_client import ProvisioningError

logger = logging.getLogger(__name__)

SKIPPED_STATES = frozenset(
    {
        RowState.SKIPPED_ALREADY_BOOKED,
        RowState.SKIPPED_INCOMPLETE,
        RowState.SKIPPED_INVALID_DATE,
    }
)


class Provisioner(Protocol):
    async def provision(
        self,
        topic: str,
        start: datetime,
        duration_minutes: int,
        agenda: str,
        account: str,
    ) -> Optional[str]: ...


class Composer(Protocol):
    async def compose_and_send(
        self,
        row: RowRecord,
        join_url: Optional[str],
        recipients: Sequence[str],
        calendar_host: str,
    ) -> None: ...


class _BatchAccumulator:
    def __init__(self) -> None:
        self.result = BookingBatchResult()

    def add(self, outcome: RowOutcome, record: Optional[RowRecord] = None) -> None:
        self.result.outcomes.append(outcome)
        if outcome.state == RowState.BOOKED:
            self.result.sent += 1
        elif outcome.state in SKIPPED_STATES:
            self.result.skipped += 1
        else:
            self.result.failed += 1
            if record is not None:
                self.result.failures.append(
                    BookingFailure(row=record, error=outcome.error or "", state=outcome.state)
                )


class BookingOrchestrator:
    """
    Drives rows one at a time through provisioning, write-back and invite.

    Per row, in order and without backward edges:

    1) Classify: already booked / invalid date / incomplete rows stop here.
    2) Provision a Zoom meeting (in-person rows skip this). A failure ends
       the row as FAILED and nothing is written back.
    3) Write the join URL and 'yes' to the sheet, and save, before inviting.
       A crash after this point never provisions the row twice.
    4) Send the invite. A failure ends the row as BOOKED_NOT_INVITED: it
       stays marked booked and must be re-sent by hand.
    5) Otherwise the row is BOOKED.

    Rows never run concurrently; each write-back is visible before the
    next row is classified. Per-row errors are folded into the result and
    never abort the batch.
    """

    def __init__(
        self,
        provisioner: Provisioner,
        composer: Composer,
        calendar_host: str,
        retry_policy: RetryPolicy = NO_RETRY,
        save_after_each_row: bool = True,
    ) -> None:
        self.provisioner = provisioner
        self.composer = composer
        self.calendar_host = calendar_host
        self.retry_policy = retry_policy
        self.save_after_each_row = save_after_each_row

    async def run(
        self,
        sheet: BookingSheet,
        overrides: Optional[BookingOverrides] = None,
    ) -> BookingBatchResult:
        """
        Classify and book every data row of `sheet` (command-line path).
        """
        acc = _BatchAccumulator()
        sheet.ensure_join_url_column()

        for row_number, values in sheet.rows():
            classification = sheet.classify(row_number, values, overrides)
            skipped = self._skip_outcome(classification)
            if skipped is not None:
                acc.add(skipped)
                continue

            record = classification.outcome.record
            acc.add(await self.book_row(sheet, record), record)

        sheet.save()
        return acc.result

    async def commit(
        self,
        sheet: BookingSheet,
        outcomes: Iterable[ValidationOutcome],
        overrides: Optional[BookingOverrides] = None,
    ) -> BookingBatchResult:
        """
        Book the validated snapshot of an upload (interactive path).

        Only ready rows are booked. Each row's 'Meeting Booked' cell is
        re-read from the document first, so a row booked since validation
        is skipped instead of provisioned again.
        """
        acc = _BatchAccumulator()
        sheet.ensure_join_url_column()

        for outcome in outcomes:
            record = outcome.record
            if not outcome.ready:
                acc.add(
                    RowOutcome(
                        row_number=record.row_number,
                        topic=record.topic,
                        state=RowState.SKIPPED_INCOMPLETE,
                        error=f"Missing: {', '.join(outcome.missing)}",
                    )
                )
                continue

            if sheet.is_booked(record.row_number):
                logger.info("Row %d already booked, skipping", record.row_number)
                acc.add(
                    RowOutcome(
                        row_number=record.row_number,
                        topic=record.topic,
                        state=RowState.SKIPPED_ALREADY_BOOKED,
                    )
                )
                continue

            record = apply_overrides(record, overrides)
            acc.add(await self.book_row(sheet, record), record)

        sheet.save()
        return acc.result

    def _skip_outcome(self, classification: Classification) -> Optional[RowOutcome]:
        if classification.state == RowState.SKIPPED_INVALID_DATE:
            logger.warning("Skipping %s", classification.detail)
            return RowOutcome(
                row_number=classification.row_number,
                state=classification.state,
                error=classification.detail,
            )
        if classification.state is not None:
            logger.debug("Row %d: %s", classification.row_number, classification.state.value)
            return RowOutcome(row_number=classification.row_number, state=classification.state)

        if not classification.outcome.ready:
            missing = ", ".join(classification.outcome.missing)
            logger.info("Row %d incomplete, missing: %s", classification.row_number, missing)
            return RowOutcome(
                row_number=classification.row_number,
                topic=classification.outcome.record.topic,
                state=RowState.SKIPPED_INCOMPLETE,
                error=f"Missing: {missing}",
            )
        return None

    async def book_row(self, sheet: BookingSheet, record: RowRecord) -> RowOutcome:
        """
        Provision, write back and invite a single ready row.
        """
        row_number = record.row_number
        join_url: Optional[str] = None

        if record.meeting_type != MeetingType.IN_PERSON:
            logger.debug("Row %d: %s", row_number, RowState.PROVISIONING.value)
            try:
                join_url = await self.retry_policy.run(
                    lambda: self.provisioner.provision(
                        record.topic,
                        record.scheduled_start,
                        record.duration_minutes,
                        record.agenda or record.topic,
                        record.provisioning_account,
                    ),
                    description=f"Zoom provisioning for row {row_number}",
                )
            except ProvisioningError as exc:
                logger.error("Row %d ('%s') provisioning failed: %s", row_number, record.topic, exc)
                return RowOutcome(
                    row_number=row_number,
                    topic=record.topic,
                    state=RowState.FAILED,
                    error=str(exc),
                )

        logger.debug("Row %d: %s", row_number, RowState.PROVISIONED.value)
        sheet.mark_booked(row_number, join_url)
        if self.save_after_each_row:
            sheet.save()

        logger.debug("Row %d: %s", row_number, RowState.INVITING.value)
        try:
            await self.retry_policy.run(
                lambda: self.composer.compose_and_send(
                    record,
                    join_url,
                    list(record.participants),
                    self.calendar_host,
                ),
                description=f"Invite for row {row_number}",
            )
        except InviteDispatchError as exc:
            logger.error(
                "Row %d ('%s') is booked but the invite failed, re-send manually: %s",
                row_number,
                record.topic,
                exc,
            )
            return RowOutcome(
                row_number=row_number,
                topic=record.topic,
                state=RowState.BOOKED_NOT_INVITED,
                join_url=join_url,
                error=str(exc),
            )

        logger.info("Row %d booked: %s", row_number, record.topic)
        return RowOutcome(
            row_number=row_number,
            topic=record.topic,
            state=RowState.BOOKED,
            join_url=join_url,
        )
