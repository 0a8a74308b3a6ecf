# meeting_booker/main.py
from fastapi import FastAPI

from meeting_booker.api.routes import bookings, health
from meeting_booker.core.config import get_settings
from meeting_booker.core.logging import configure_logging


def create_app() -> FastAPI:
    """
    Application factory for the Meeting Booker service.
    """
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Turns a Doodle bookings workbook into Zoom meetings and Outlook\n"
            "calendar invitations. Uploads are validated first and booked on an\n"
            "explicit second request."
        ),
        version="0.1.0",
    )

    app.include_router(health.router)
    app.include_router(bookings.router)

    return app


app = create_app()
