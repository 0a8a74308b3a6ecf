# tests/test_booking_orchestrator.py
import logging

import httpx
import openpyxl
import pytest

from meeting_booker.schemas.booking import BookingOverrides, MeetingType, RowState
from meeting_booker.services.booking_orchestrator import BookingOrchestrator
from meeting_booker.services.graph_client import GraphClient
from meeting_booker.services.invite_composer import InviteComposer
from meeting_booker.services.retry import RetryPolicy
from meeting_booker.services.zoom_client import ProvisioningError, ZoomClient, ZoomProvisioner

HOST = "organizer@example.com"


def _row(topic, **extra):
    row = {
        "Meeting Name": topic,
        "Date Chosen": "2024-05-01 10:00",
        "Length of Meeting(minutes)": 30,
        "Team invitees": "a@x.com",
        "Added Invitee 1": "b@x.com",
        "Zoom Account to book from": "host@example.com",
        "Team Name": "Cedar Labs",
    }
    row.update(extra)
    return row


def _orchestrator(provisioner, composer, **kwargs) -> BookingOrchestrator:
    return BookingOrchestrator(provisioner, composer, calendar_host=HOST, **kwargs)


@pytest.mark.asyncio
async def test_partial_failure_books_the_other_rows(
    make_workbook, open_booking_sheet, read_rows, fakes_factory
):
    path = make_workbook([_row("A"), _row("B"), _row("C")])
    provisioner, composer = fakes_factory(provision_fail=["B"])

    result = await _orchestrator(provisioner, composer).run(open_booking_sheet(path))

    assert result.sent == 2
    assert result.failed == 1
    assert result.skipped == 0
    assert [f.row.topic for f in result.failures] == ["B"]
    assert result.failures[0].state == RowState.FAILED

    rows = read_rows(path)
    assert rows[0]["Meeting Booked"] == "yes"
    assert rows[0]["JoinURL"] == "https://zoom.us/j/1"
    assert rows[1]["Meeting Booked"] is None
    assert rows[1]["JoinURL"] is None
    assert rows[2]["Meeting Booked"] == "yes"
    assert rows[2]["JoinURL"] == "https://zoom.us/j/3"

    # The failed row got no invite.
    assert [c["row"].topic for c in composer.calls] == ["A", "C"]


@pytest.mark.asyncio
async def test_second_run_makes_no_external_calls(
    make_workbook, open_booking_sheet, fakes_factory
):
    path = make_workbook([_row("A"), _row("B")])

    first_provisioner, first_composer = fakes_factory()
    first = await _orchestrator(first_provisioner, first_composer).run(open_booking_sheet(path))
    assert first.sent == 2

    provisioner, composer = fakes_factory()
    second = await _orchestrator(provisioner, composer).run(open_booking_sheet(path))

    assert second.sent == 0
    assert second.skipped == 2
    assert provisioner.calls == []
    assert composer.calls == []
    assert {o.state for o in second.outcomes} == {RowState.SKIPPED_ALREADY_BOOKED}


@pytest.mark.asyncio
async def test_incomplete_and_invalid_date_rows_are_skipped(
    make_workbook, open_booking_sheet, read_rows, fakes_factory, caplog
):
    path = make_workbook(
        [
            _row("NoDate", **{"Date Chosen": None}),
            _row("Garbled", **{"Date Chosen": "someday"}),
            _row("Good"),
        ]
    )
    provisioner, composer = fakes_factory()

    with caplog.at_level(logging.WARNING, logger="meeting_booker"):
        result = await _orchestrator(provisioner, composer).run(open_booking_sheet(path))

    assert result.sent == 1
    assert result.skipped == 2
    assert [o.state for o in result.outcomes] == [
        RowState.SKIPPED_INCOMPLETE,
        RowState.SKIPPED_INVALID_DATE,
        RowState.BOOKED,
    ]
    assert result.outcomes[0].error == "Missing: Date Chosen"
    assert [c["topic"] for c in provisioner.calls] == ["Good"]
    assert any("someday" in r.getMessage() for r in caplog.records)

    rows = read_rows(path)
    assert rows[0]["Meeting Booked"] is None
    assert rows[1]["Meeting Booked"] is None


@pytest.mark.asyncio
async def test_blank_rows_are_not_counted(make_workbook, open_booking_sheet, fakes_factory):
    path = make_workbook([_row("A"), {}, _row("B")])
    provisioner, composer = fakes_factory()

    result = await _orchestrator(provisioner, composer).run(open_booking_sheet(path))

    assert result.sent == 2
    assert len(result.outcomes) == 2
    assert [o.row_number for o in result.outcomes] == [3, 5]


@pytest.mark.asyncio
async def test_in_person_rows_skip_provisioning(
    make_workbook, open_booking_sheet, read_rows, fakes_factory
):
    path = make_workbook([_row("Visit", **{"Meeting Type": "In person", "Location": "Room 4"})])
    provisioner, composer = fakes_factory()

    result = await _orchestrator(provisioner, composer).run(open_booking_sheet(path))

    assert result.sent == 1
    assert provisioner.calls == []
    assert composer.calls[0]["join_url"] is None
    assert composer.calls[0]["row"].location == "Room 4"

    row = read_rows(path)[0]
    assert row["Meeting Booked"] == "yes"
    assert row["JoinURL"] is None


@pytest.mark.asyncio
async def test_invite_failure_keeps_row_booked(
    make_workbook, open_booking_sheet, read_rows, fakes_factory
):
    path = make_workbook([_row("A")])
    provisioner, composer = fakes_factory(invite_fail=["A"])

    result = await _orchestrator(provisioner, composer).run(open_booking_sheet(path))

    assert result.sent == 0
    assert result.failed == 1
    outcome = result.outcomes[0]
    assert outcome.state == RowState.BOOKED_NOT_INVITED
    assert outcome.join_url == "https://zoom.us/j/1"
    assert result.failures[0].state == RowState.BOOKED_NOT_INVITED

    row = read_rows(path)[0]
    assert row["Meeting Booked"] == "yes"
    assert row["JoinURL"] == "https://zoom.us/j/1"


@pytest.mark.asyncio
async def test_join_url_column_is_added_when_absent(
    make_workbook, open_booking_sheet, fakes_factory
):
    path = make_workbook([_row("A")])
    provisioner, composer = fakes_factory()

    await _orchestrator(provisioner, composer).run(open_booking_sheet(path))

    header = [c.value for c in openpyxl.load_workbook(path)["Bookings"][1]]
    assert header[-1] == "JoinURL"
    assert header.count("JoinURL") == 1


@pytest.mark.asyncio
async def test_row_is_saved_before_the_invite_goes_out(
    make_workbook, open_booking_sheet, read_rows, fake_provisioner
):
    path = make_workbook([_row("A")])
    seen = []

    class _InspectingComposer:
        async def compose_and_send(self, row, join_url, recipients, calendar_host):
            seen.append(read_rows(path)[0]["Meeting Booked"])

    await _orchestrator(fake_provisioner, _InspectingComposer()).run(open_booking_sheet(path))

    assert seen == ["yes"]


@pytest.mark.asyncio
async def test_participants_and_host_are_passed_through(
    make_workbook, open_booking_sheet, fakes_factory
):
    path = make_workbook([_row("A", **{"Meeting Name For Invite": "Weekly sync"})])
    provisioner, composer = fakes_factory()

    await _orchestrator(provisioner, composer).run(open_booking_sheet(path))

    assert provisioner.calls[0]["agenda"] == "Weekly sync"
    assert provisioner.calls[0]["duration_minutes"] == 30
    assert provisioner.calls[0]["account"] == "host@example.com"
    assert composer.calls[0]["recipients"] == ["a@x.com", "b@x.com"]
    assert composer.calls[0]["calendar_host"] == HOST


@pytest.mark.asyncio
async def test_commit_books_snapshot_and_rechecks_booked_cell(
    make_workbook, open_booking_sheet, fakes_factory
):
    path = make_workbook([_row("A"), _row("B"), _row("C", **{"Team invitees": None, "Added Invitee 1": None})])
    snapshot = open_booking_sheet(path)
    outcomes = [snapshot.classify(n, v).outcome for n, v in snapshot.rows()]
    assert [o.ready for o in outcomes] == [True, True, False]

    # Row A gets booked by someone else between validate and commit.
    wb = openpyxl.load_workbook(path)
    ws = wb["Bookings"]
    ws.cell(row=3, column=11, value="Yes")
    wb.save(path)

    provisioner, composer = fakes_factory()
    result = await _orchestrator(provisioner, composer).commit(open_booking_sheet(path), outcomes)

    assert [o.state for o in result.outcomes] == [
        RowState.SKIPPED_ALREADY_BOOKED,
        RowState.BOOKED,
        RowState.SKIPPED_INCOMPLETE,
    ]
    assert result.sent == 1
    assert result.skipped == 2
    assert [c["topic"] for c in provisioner.calls] == ["B"]


@pytest.mark.asyncio
async def test_commit_applies_global_overrides(make_workbook, open_booking_sheet, fakes_factory):
    path = make_workbook([_row("A")])
    snapshot = open_booking_sheet(path)
    outcomes = [snapshot.classify(n, v).outcome for n, v in snapshot.rows()]
    provisioner, composer = fakes_factory()

    result = await _orchestrator(provisioner, composer).commit(
        open_booking_sheet(path),
        outcomes,
        BookingOverrides(meeting_type=MeetingType.IN_PERSON, location="Main hall"),
    )

    assert result.sent == 1
    assert provisioner.calls == []
    row = composer.calls[0]["row"]
    assert row.meeting_type == MeetingType.IN_PERSON
    assert row.location == "Main hall"


@pytest.mark.asyncio
async def test_transient_provisioning_errors_are_retried(make_workbook, open_booking_sheet, fake_composer):
    path = make_workbook([_row("A")])
    delays = []

    async def _sleep(seconds):
        delays.append(seconds)

    class _FlakyProvisioner:
        attempts = 0

        async def provision(self, topic, start, duration_minutes, agenda, account):
            _FlakyProvisioner.attempts += 1
            if _FlakyProvisioner.attempts < 3:
                raise ProvisioningError("throttled", status_code=429, transient=True)
            return "https://zoom.us/j/9"

    policy = RetryPolicy(max_attempts=3, base_delay_seconds=0.5, sleep=_sleep)
    result = await _orchestrator(_FlakyProvisioner(), fake_composer, retry_policy=policy).run(
        open_booking_sheet(path)
    )

    assert result.sent == 1
    assert _FlakyProvisioner.attempts == 3
    assert delays == [0.5, 1.0]


class _ProviderAsyncClient:
    """
    Stand-in for httpx.AsyncClient answering both Zoom and Graph. Meeting
    'A' gets an HTML gateway page, the invite for 'B' gets a 503.
    """

    def __init__(self, timeout=None):
        self._timeout = timeout

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    async def post(self, url, data=None, **kwargs):
        return httpx.Response(200, json={"access_token": "token", "expires_in": 3600})

    async def request(self, method, url, headers=None, params=None, json=None):
        if url.startswith("https://api.zoom.us/"):
            if json["topic"] == "A":
                return httpx.Response(200, text="<html>gateway</html>")
            return httpx.Response(201, json={"id": 1, "join_url": f"https://zoom.us/j/{json['topic']}"})
        if json["subject"] == "B":
            return httpx.Response(503, json={"error": {"code": "ServiceUnavailable"}})
        return httpx.Response(201, json={"id": "event"})


@pytest.mark.asyncio
async def test_real_clients_isolate_malformed_and_failed_responses(
    make_workbook, open_booking_sheet, read_rows, monkeypatch
):
    monkeypatch.setattr(httpx, "AsyncClient", _ProviderAsyncClient)
    provisioner = ZoomProvisioner(
        ZoomClient(account_id="acc", client_id="cid", client_secret="secret"),
        timezone="Asia/Beirut",
    )
    composer = InviteComposer(
        GraphClient(tenant_id="tenant", client_id="cid", client_secret="secret")
    )
    path = make_workbook([_row("A"), _row("B"), _row("C")])

    result = await _orchestrator(provisioner, composer).run(open_booking_sheet(path))

    assert [o.state for o in result.outcomes] == [
        RowState.FAILED,
        RowState.BOOKED_NOT_INVITED,
        RowState.BOOKED,
    ]
    assert result.sent == 1
    assert result.failed == 2
    assert "Invalid JSON" in result.outcomes[0].error

    rows = read_rows(path)
    assert rows[0]["Meeting Booked"] is None
    assert rows[1]["Meeting Booked"] == "yes"
    assert rows[1]["JoinURL"] == "https://zoom.us/j/B"
    assert rows[2]["JoinURL"] == "https://zoom.us/j/C"
