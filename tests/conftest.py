# tests/conftest.py
from typing import Any, Dict, Iterable, List, Optional

import openpyxl
import pytest
from fastapi.testclient import TestClient

from meeting_booker.api.routes import bookings as bookings_route
from meeting_booker.api.routes import health as health_route
from meeting_booker.core.config import Settings
from meeting_booker.main import create_app
from meeting_booker.services import booking_service
from meeting_booker.services.booking_sheet import BookingSheet
from meeting_booker.services.invite_composer import InviteDispatchError
from meeting_booker.services.workbook import BookingWorkbook
from meeting_booker.services.zoom_client import ProvisioningError

BOOKING_HEADERS = [
    "Meeting Name",
    "Date Chosen",
    "Length of Meeting(minutes)",
    "Meeting Name For Invite",
    "Team invitees",
    "Added Invitee 1",
    "Added Invitee 2",
    "Added Invitee 3",
    "Added Invitee 4",
    "Email from form",
    "Meeting Booked",
    "Zoom Account to book from",
    "Team Name",
    "Meeting Type",
    "Location",
]


@pytest.fixture(scope="session")
def client() -> TestClient:
    """
    Shared TestClient built through the application factory.
    """
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def headers() -> List[str]:
    return list(BOOKING_HEADERS)


@pytest.fixture
def make_workbook(tmp_path):
    """
    Factory writing a Doodle-style workbook: header row, placeholder row 2,
    then one row per dict (keyed by header label).
    """

    def _make(
        rows: Iterable[Dict[str, Any]],
        headers: Optional[List[str]] = None,
        name: str = "bookings.xlsx",
        sheet_name: str = "Bookings",
    ):
        headers = headers or list(BOOKING_HEADERS)
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = sheet_name
        ws.append(headers)
        ws.append(["Doodle placeholder"] + [None] * (len(headers) - 1))
        for row in rows:
            ws.append([row.get(h) for h in headers])
        path = tmp_path / name
        wb.save(path)
        return path

    return _make


@pytest.fixture
def read_rows():
    """
    Read data rows (from row 3) back as dicts keyed by header label.
    """

    def _read(path, sheet_name: str = "Bookings") -> List[Dict[str, Any]]:
        ws = openpyxl.load_workbook(path)[sheet_name]
        header = [c.value for c in ws[1]]
        out = []
        for values in ws.iter_rows(min_row=3, values_only=True):
            out.append({h: v for h, v in zip(header, values) if h is not None})
        return out

    return _read


@pytest.fixture
def open_booking_sheet():
    def _open(path) -> BookingSheet:
        return BookingSheet.load(
            BookingWorkbook.open(path, "Bookings"),
            default_account="host@example.com",
            timezone="Asia/Beirut",
            first_data_row=3,
        )

    return _open


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    """
    Explicit settings patched into the modules that read them.
    """
    test_settings = Settings(
        APP_ENV="test",
        OUTLOOK_HOST="organizer@example.com",
        ZOOM_DEFAULT_ACCOUNT="host@example.com",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        BOOKING_API_KEY=None,
    )
    for module in (booking_service, bookings_route, health_route):
        monkeypatch.setattr(module, "get_settings", lambda: test_settings)
    return test_settings


class FakeProvisioner:
    """
    Records provision() calls; topics in `fail_topics` raise ProvisioningError.
    """

    def __init__(self, fail_topics: Iterable[str] = ()) -> None:
        self.fail_topics = set(fail_topics)
        self.calls: List[Dict[str, Any]] = []

    async def provision(self, topic, start, duration_minutes, agenda, account):
        self.calls.append(
            {
                "topic": topic,
                "start": start,
                "duration_minutes": duration_minutes,
                "agenda": agenda,
                "account": account,
            }
        )
        if topic in self.fail_topics:
            raise ProvisioningError("Zoom POST failed (status=500): boom", status_code=500)
        return f"https://zoom.us/j/{len(self.calls)}"


class FakeComposer:
    """
    Records compose_and_send() calls; topics in `fail_topics` raise
    InviteDispatchError.
    """

    def __init__(self, fail_topics: Iterable[str] = ()) -> None:
        self.fail_topics = set(fail_topics)
        self.calls: List[Dict[str, Any]] = []

    async def compose_and_send(self, row, join_url, recipients, calendar_host):
        self.calls.append(
            {
                "row": row,
                "join_url": join_url,
                "recipients": list(recipients),
                "calendar_host": calendar_host,
            }
        )
        if row.topic in self.fail_topics:
            raise InviteDispatchError(f"Invite for '{row.topic}' could not be sent")


@pytest.fixture
def fake_provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def fake_composer() -> FakeComposer:
    return FakeComposer()


@pytest.fixture
def fakes_factory():
    """
    Build (provisioner, composer) pairs with configurable failures.
    """

    def _build(provision_fail=(), invite_fail=()):
        return FakeProvisioner(provision_fail), FakeComposer(invite_fail)

    return _build
