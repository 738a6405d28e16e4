"""
Consent validity, expiry and merge rules.

Every "does this visitor still need to be asked?" decision goes through
is_effective_consent. Do not re-implement the empty/expired checks at
call sites.
"""

from datetime import datetime, timedelta, timezone

from cookie_consent.config import DEFAULT_MAX_AGE_DAYS
from cookie_consent.schemas.consent import ConsentRecord


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


def is_expired(record: ConsentRecord | None, now: datetime | None = None) -> bool:
    """
    True when the record has lapsed.

    A missing record counts as expired. A missing expiry does not, but an
    expiry the codec could not parse does.
    """
    if record is None:
        return True
    if record.expires_at is None:
        return False
    if not isinstance(record.expires_at, datetime):
        return True
    now = _as_utc(now) if now is not None else utc_now()
    return now > _as_utc(record.expires_at)


def is_effective_consent(record: ConsentRecord | None, now: datetime | None = None) -> bool:
    """Return True only for a present, non-empty, unexpired record."""
    if record is None:
        return False
    if not record.groups:
        return False
    return not is_expired(record, now)


def _granted_at(record: ConsentRecord) -> datetime | None:
    if isinstance(record.consented_at, datetime):
        return record.consented_at
    return None


def is_newer(record: ConsentRecord, other: ConsentRecord) -> bool:
    """True when ``record`` was granted strictly after ``other``."""
    record_time = _granted_at(record)
    other_time = _granted_at(other)
    if record_time is None:
        return False
    if other_time is None:
        return True
    return record_time > other_time


def newest(persisted: ConsentRecord | None, cookie: ConsentRecord | None) -> ConsentRecord | None:
    """
    Newest-wins merge of the persisted and the cookie record.

    The whole later record wins; fields are never mixed. A side with no
    usable timestamp loses, and equal timestamps keep the cookie record.
    """
    if persisted is None:
        return cookie
    if cookie is None:
        return persisted
    if _granted_at(persisted) is None:
        return cookie
    if _granted_at(cookie) is None:
        return persisted
    return persisted if is_newer(persisted, cookie) else cookie


def build_consent(
    policy_version: str,
    groups: list[str],
    now: datetime | None = None,
    lifetime_days: int = DEFAULT_MAX_AGE_DAYS,
) -> ConsentRecord:
    """Create the record for a consent choice made at ``now``."""
    granted = _as_utc(now) if now is not None else utc_now()
    return ConsentRecord(
        policy_version=policy_version,
        groups=groups,
        consented_at=granted,
        expires_at=granted + timedelta(days=lifetime_days),
    )
