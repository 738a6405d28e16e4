"""
Consent cookie codec

Wire format (JSON object):

    {
        "terms": "v1.0",
        "groups": ["essential", "analytics"],
        "consented_at": "2025-11-03T12:00:00Z",
        "expires_at": "2026-11-03T12:00:00Z"
    }

Unknown keys are ignored. A timestamp that fails to parse is kept as the
raw string instead of rejecting the cookie, so an old cookie format still
yields a usable record.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from cookie_consent.exceptions import DecodeError, InvalidFormatError, InvalidRecordError
from cookie_consent.schemas.consent import ConsentRecord

logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = ("consented_at", "expires_at")


def format_timestamp(value: datetime | str | None) -> str | None:
    """Render a timestamp as RFC 3339 UTC (``2024-01-01T00:00:00Z``)."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")
    return value


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 / RFC 3339 string, returning None when it is not one."""
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        # Offsets at the ends of the datetime range cannot be shifted to UTC
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def to_dict(record: ConsentRecord) -> dict[str, Any]:
    if not isinstance(record, ConsentRecord):
        raise InvalidRecordError(value=record)
    return {
        "terms": record.policy_version,
        "groups": list(record.groups),
        "consented_at": format_timestamp(record.consented_at),
        "expires_at": format_timestamp(record.expires_at),
    }


def from_dict(data: Any) -> ConsentRecord:
    if not isinstance(data, dict):
        raise DecodeError("Consent value is not an object", details={"type": type(data).__name__})

    values: dict[str, Any] = {
        "policy_version": data.get("terms"),
        "groups": data.get("groups") or [],
    }
    for field in TIMESTAMP_FIELDS:
        raw = data.get(field)
        if raw is None:
            values[field] = None
            continue
        parsed = parse_timestamp(raw)
        if parsed is None:
            logger.debug("Keeping unparsable %s value %r as raw text", field, raw)
            values[field] = raw if isinstance(raw, str) else str(raw)
        else:
            values[field] = parsed

    try:
        return ConsentRecord(**values)
    except ValidationError as e:
        raise DecodeError(
            "Consent value does not describe a consent record",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e


def encode(record: ConsentRecord | None) -> str:
    """
    Serialize a consent record to the cookie wire format.

    Raises InvalidRecordError for None or anything that is not a
    ConsentRecord; callers should then skip setting the cookie.
    """
    return json.dumps(to_dict(record), separators=(",", ":"))


def decode(value: Any) -> ConsentRecord | None:
    """
    Parse a cookie value back into a ConsentRecord.

    ``None`` and ``""`` mean the cookie was never set and return None.
    Raises InvalidFormatError for non-text input and DecodeError for text
    that is not a JSON consent object.
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidFormatError(value)

    try:
        data = json.loads(value)
    except ValueError as e:
        raise DecodeError("Consent value is not valid JSON") from e

    return from_dict(data)
