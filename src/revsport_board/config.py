"""Configuration loaded from environment variables.

Upstream portal credentials, cache timing, and the club display settings
(branding and named session windows) consumed by the kiosk clients.
"""

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings

from revsport_board.logging import get_logger

log = get_logger(__name__)

_HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


class SessionSlot(BaseModel):
    """A named recurring time window used to bucket bookings for display."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    key: str  # "morning1"
    label: str  # "Morning 1"
    start_time: str = Field(pattern=_HHMM)
    end_time: str = Field(pattern=_HHMM)

    @model_validator(mode="after")
    def _check_order(self) -> "SessionSlot":
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Session {self.key!r} ends ({self.end_time}) before it starts ({self.start_time})"
            )
        return self


class ClubBranding(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    primary_color: str = "#1a4d8f"
    secondary_color: str = "#f2b705"
    logo_url: str | None = None


DEFAULT_SESSIONS = [
    SessionSlot(key="morning1", label="Morning 1", start_time="06:00", end_time="08:00"),
    SessionSlot(key="morning2", label="Morning 2", start_time="08:00", end_time="10:00"),
]


class ClubConfig(BaseModel):
    """Club identity shown on the display boards."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = "Lake Macquarie Rowing Club"
    short_name: str = "LMRC"
    branding: ClubBranding = Field(default_factory=ClubBranding)
    sessions: list[SessionSlot] = Field(default_factory=lambda: list(DEFAULT_SESSIONS))


class ScraperConfig(BaseSettings):
    """Service configuration loaded from environment variables.

    Settings are loaded from REVSPORT_* environment variables with sensible
    defaults. For local development, create a .env file in the project root.
    Nested club settings accept JSON (REVSPORT_CLUB='{"name": ...}') or
    double-underscore keys (REVSPORT_CLUB__NAME=...).
    """

    # RevSport portal (server-rendered HTML, no API)
    base_url: str = Field(
        default="https://www.lakemacquarierowingclub.org.au",
        description="RevSport club site base URL",
    )
    username: str = Field(
        default="",
        description="RevSport member login (email or username)",
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="RevSport member password",
    )
    login_path: str = Field(default="/login", description="Login form path")
    verify_path: str = Field(
        default="/bookings",
        description="Protected page used to verify a login and to list boats",
    )

    # Upstream politeness
    request_timeout: float = Field(
        default=20.0,
        description="Timeout in seconds applied to every upstream request",
    )
    request_delay: float = Field(
        default=0.2,
        description="Delay in seconds between per-boat calendar requests",
    )
    login_settle_delay: float = Field(
        default=1.0,
        description="Pause in seconds between submitting credentials and verifying",
    )

    # Session persistence
    session_state_file: str | None = Field(
        default="data/state/revsport_session.json",
        description="Cookie jar file restored on start; empty disables persistence",
    )
    max_session_age_hours: int = Field(
        default=24,
        description="Maximum age of a saved cookie jar before a fresh login",
    )

    # Cache
    cache_ttl_seconds: int = Field(
        default=600,
        description="Seconds a booking snapshot is served before a refresh",
    )
    warm_cache_on_startup: bool = Field(
        default=True,
        description="Start a background refresh when the API starts",
    )
    snapshot_export_path: str | None = Field(
        default=None,
        description="If set, each fresh snapshot is also written to this JSON file",
    )

    # Display
    club: ClubConfig = Field(default_factory=ClubConfig)
    refresh_interval: int = Field(
        default=600_000,
        description="Display client refresh interval in milliseconds",
    )
    board_days: int = Field(
        default=7,
        ge=1,
        le=14,
        description="Days shown on the booking board",
    )

    # Server
    host: str = Field(default="0.0.0.0", description="API bind address")
    port: int = Field(default=3000, description="API port")

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "REVSPORT_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: ScraperConfig | None = None


def load_config() -> ScraperConfig:
    """Load configuration, falling back to defaults when it is invalid.

    Returns:
        ScraperConfig built from the environment, or the documented defaults
        if the environment holds values that fail validation.
    """
    try:
        return ScraperConfig()
    except ValidationError as e:
        log.error(
            "config_invalid_using_defaults",
            errors=[".".join(str(p) for p in err["loc"]) for err in e.errors()],
        )
        return ScraperConfig.model_construct()


def get_config() -> ScraperConfig:
    """Get the configuration singleton.

    Returns:
        ScraperConfig: Service configuration instance
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config
