# meeting_booker/api/routes/health.py
from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel, Field

from meeting_booker.core.config import get_settings
from meeting_booker.services.session_store import get_session_store


router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """
    Response schema for the health check endpoint.
    """

    status: str = Field(..., description="Overall health status.", examples=["ok"])
    app_name: str = Field(..., description="Name of the running application.", examples=["Meeting Booker"])
    environment: str = Field(..., description="Deployment environment.", examples=["local"])
    booking_timezone: str = Field(
        ...,
        description="Zone in which meetings are scheduled.",
        examples=["Asia/Beirut"],
    )
    zoom_configured: bool = Field(..., description="Zoom credentials are present.")
    graph_configured: bool = Field(
        ...,
        description="Graph credentials and the organizer mailbox are present.",
    )
    open_sessions: int = Field(..., description="Upload sessions currently held in memory.")
    timestamp_utc: datetime = Field(..., description="Server-side timestamp (UTC).")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check for the Meeting Booker service",
    description=(
        "Lightweight liveness probe. Reports whether Zoom and Graph credentials are "
        "configured without calling either service."
    ),
)
async def health_check() -> HealthResponse:
    settings = get_settings()
    return HealthResponse(
        status="ok",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        booking_timezone=settings.BOOKING_TIMEZONE,
        zoom_configured=bool(
            settings.ZOOM_ACCOUNT_ID and settings.ZOOM_CLIENT_ID and settings.ZOOM_CLIENT_SECRET
        ),
        graph_configured=bool(
            settings.GRAPH_TENANT_ID
            and settings.GRAPH_CLIENT_ID
            and settings.GRAPH_CLIENT_SECRET
            and settings.OUTLOOK_HOST
        ),
        open_sessions=len(get_session_store()),
        timestamp_utc=datetime.now(tz=timezone.utc),
    )
