# meeting_booker/api/dependencies/api_key.py
from typing import Optional

from fastapi import Header, HTTPException, status

from meeting_booker.core.config import get_settings


async def verify_booking_api_key(
    booking_api_key: Optional[str] = Header(
        default=None,
        alias="X-Booking-Api-Key",
        description="API key required for booking endpoints in non-local environments.",
    ),
) -> None:
    """
    Dependency protecting the upload/process endpoints.

    Rules
    -----
    - APP_ENV in ("local", "test"):
        - BOOKING_API_KEY unset -> no auth enforced.
        - BOOKING_API_KEY set   -> header must match.
    - Any other APP_ENV:
        - BOOKING_API_KEY must be set, otherwise 500 (misconfiguration).
        - Header must be present and match, otherwise 401.
    """
    settings = get_settings()
    env = (settings.APP_ENV or "local").lower()
    expected = getattr(settings, "BOOKING_API_KEY", None)

    if env in ("local", "test") and not expected:
        return

    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="BOOKING_API_KEY not configured for this environment.",
        )

    if not booking_api_key or booking_api_key != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing booking API key.",
        )
