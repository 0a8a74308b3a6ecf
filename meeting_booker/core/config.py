# meeting_booker/core/config.py
from functools import lru_cache

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables (or a local `.env` file)
    at runtime and shared by both the HTTP service and the command line.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Meeting Booker"
    APP_ENV: str = Field("local", description="Environment name: local/dev/stage/prod")
    LOG_LEVEL: str = Field("INFO", description="Root log level.")

    BOOKING_TIMEZONE: str = Field(
        "Asia/Beirut",
        description="Zone in which row dates are interpreted and meetings are scheduled.",
    )
    TIMEZONE: str = Field(
        "UTC",
        description="Zone of non-business timestamps: upload session expiry.",
    )

    OUTLOOK_HOST: str | None = Field(
        default=None,
        description="Organizer mailbox whose calendar sends the invitations.",
    )

    # --- Zoom (server-to-server OAuth) ---
    ZOOM_ACCOUNT_ID: str | None = None
    ZOOM_CLIENT_ID: str | None = None
    ZOOM_CLIENT_SECRET: str | None = None
    ZOOM_BASE_URL: AnyHttpUrl | None = None
    ZOOM_DEFAULT_ACCOUNT: str | None = Field(
        default=None,
        description=(
            "Zoom user to book from when a row leaves 'Zoom Account to book from' "
            "empty. Falls back to OUTLOOK_HOST."
        ),
    )

    # --- Microsoft Graph ---
    GRAPH_TENANT_ID: str | None = None
    GRAPH_CLIENT_ID: str | None = None
    GRAPH_CLIENT_SECRET: str | None = None
    GRAPH_BASE_URL: AnyHttpUrl | None = None

    # --- Workbook ---
    DEFAULT_WORKBOOK_PATH: str = Field(
        "Doodle Bookings.xlsx",
        description="Workbook processed by the command line when no path is given.",
    )
    WORKSHEET_NAME: str = Field("Bookings", description="Sheet holding the booking rows.")
    FIRST_DATA_ROW: int = Field(
        3,
        ge=2,
        description="First data row (1-based). Doodle exports carry a placeholder in row 2.",
    )

    # --- Interactive upload ---
    UPLOAD_DIR: str = Field("uploads", description="Directory for uploaded workbooks.")
    SESSION_TTL_SECONDS: int = Field(
        3600,
        gt=0,
        description="How long a validated upload can be committed.",
    )
    BOOKING_API_KEY: str | None = Field(
        default=None,
        description="API key required for /upload and /process in non-local environments.",
    )

    # --- External call policy ---
    RETRY_MAX_ATTEMPTS: int = Field(
        1,
        ge=1,
        description="Attempts per Zoom/Graph call. 1 disables retries.",
    )
    RETRY_BASE_DELAY_SECONDS: float = Field(
        1.0,
        ge=0,
        description="Base delay for exponential backoff between attempts.",
    )

    INVITE_SIGN_OFF: str = Field(
        "Berytech Team",
        description="Signature printed at the bottom of every invitation body.",
    )

    @property
    def default_provisioning_account(self) -> str | None:
        return self.ZOOM_DEFAULT_ACCOUNT or self.OUTLOOK_HOST


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.
    """
    return Settings()
