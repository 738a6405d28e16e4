from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

from cookie_consent.exceptions import ConsentConfigError

load_dotenv()

# 1 year
DEFAULT_MAX_AGE_DAYS = 365


class CookieGroup(BaseModel):
    """A category of cookies the visitor can accept or refuse."""

    id: str
    label: str
    description: str
    required: bool = False


DEFAULT_COOKIE_GROUPS = [
    CookieGroup(
        id="essential",
        label="Essential Cookies",
        description=(
            "These cookies are necessary for the website to function and cannot be disabled. "
            "They are usually set in response to actions you take, such as setting privacy "
            "preferences or logging in."
        ),
        required=True,
    ),
    CookieGroup(
        id="analytics",
        label="Analytics Cookies",
        description=(
            "These cookies help us understand how visitors interact with our website by "
            "collecting and reporting information anonymously."
        ),
    ),
    CookieGroup(
        id="marketing",
        label="Marketing Cookies",
        description=(
            "These cookies are used to track visitors across websites to display relevant "
            "advertisements. They may be set by advertising partners through our site."
        ),
    ),
]


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Cookie Consent"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"

    # Database settings
    database_url: str = "sqlite+aiosqlite:///./consent.db"

    # Security settings
    secret_key: str

    # Consent settings
    consent_cookie_name: str = "_consent"
    consent_session_key: str = "consent"
    consent_user_id_key: str = "current_user_id"
    consent_max_age_days: int = DEFAULT_MAX_AGE_DAYS
    consent_cookie_secure: bool | None = None
    consent_same_site: str = "lax"
    consent_terms_version: str = "v1.0"
    consent_url: str = "/consent"
    cookie_groups: list[CookieGroup] = DEFAULT_COOKIE_GROUPS

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()


class ConsentConfig(BaseModel):
    """
    Immutable knobs for one ConsentStorage instance.

    Passed in at construction so the resolver never reads process-wide state.
    ``cookie_secure=None`` means "secure when the request came in over https".
    """

    model_config = ConfigDict(frozen=True)

    cookie_name: str = "_consent"
    session_key: str = "consent"
    user_id_key: str = "current_user_id"
    max_age_days: int = DEFAULT_MAX_AGE_DAYS
    cookie_secure: bool | None = None
    cookie_http_only: bool = False
    cookie_same_site: str = "lax"
    cookie_path: str = "/"
    signing_key: str | None = None
    terms_version: str = "v1.0"
    consent_url: str = "/consent"
    cookie_groups: tuple[CookieGroup, ...] = tuple(DEFAULT_COOKIE_GROUPS)

    @property
    def max_age_seconds(self) -> int:
        return self.max_age_days * 24 * 60 * 60

    @property
    def synced_identity_key(self) -> str:
        return f"{self.session_key}_synced_for"

    @classmethod
    def from_settings(cls, source: Settings | None = None, **overrides) -> "ConsentConfig":
        source = source or settings
        secure = source.consent_cookie_secure
        if secure is None and source.environment == "production":
            secure = True
        values = {
            "cookie_name": source.consent_cookie_name,
            "session_key": source.consent_session_key,
            "user_id_key": source.consent_user_id_key,
            "max_age_days": source.consent_max_age_days,
            "cookie_secure": secure,
            "cookie_same_site": source.consent_same_site,
            "signing_key": source.secret_key,
            "terms_version": source.consent_terms_version,
            "consent_url": source.consent_url,
            "cookie_groups": tuple(source.cookie_groups),
        }
        values.update(overrides)
        return cls(**values)


def cookie_groups(config: ConsentConfig | None = None) -> list[CookieGroup]:
    """Return the configured cookie groups, falling back to the defaults."""
    if config is None:
        return list(settings.cookie_groups)
    return list(config.cookie_groups)


def get_group(group_id: str, config: ConsentConfig | None = None) -> CookieGroup | None:
    return next((group for group in cookie_groups(config) if group.id == group_id), None)


def required_groups(config: ConsentConfig | None = None) -> list[CookieGroup]:
    return [group for group in cookie_groups(config) if group.required]


def optional_groups(config: ConsentConfig | None = None) -> list[CookieGroup]:
    return [group for group in cookie_groups(config) if not group.required]


REQUIRED_GROUP_FIELDS = ("id", "label", "description", "required")


def validate_groups(groups: list[dict]) -> list[CookieGroup]:
    """
    Validate raw cookie group definitions (e.g. loaded from JSON config).

    Raises ConsentConfigError naming the first missing field; returns the
    parsed groups otherwise.
    """
    parsed = []
    for group in groups:
        missing = [field for field in REQUIRED_GROUP_FIELDS if field not in group]
        if missing:
            raise ConsentConfigError(
                f"Cookie group missing required field: {missing[0]}",
                details={"group": group, "missing": missing},
            )
        parsed.append(CookieGroup(**group))
    return parsed
