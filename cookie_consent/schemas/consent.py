from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConsentRecord(BaseModel):
    """
    One consent decision: which policy version and which cookie groups the
    visitor accepted, and when.

    Timestamps are UTC with second precision. A timestamp held as ``str``
    is a value the codec could not parse; it is kept verbatim rather than
    dropping the whole record.
    """

    model_config = ConfigDict(frozen=True)

    policy_version: str = Field(..., min_length=1, description="Policy version identifier, e.g. 'v1.0'")
    groups: list[str] = Field(default_factory=list, description="Accepted cookie group ids")
    consented_at: datetime | str | None = Field(None, description="When the consent was given")
    expires_at: datetime | str | None = Field(None, description="When the consent lapses")

    @field_validator("groups")
    @classmethod
    def dedupe_groups(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @field_validator("consented_at", "expires_at")
    @classmethod
    def normalize_timestamp(cls, value):
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc).replace(microsecond=0)
        return value
