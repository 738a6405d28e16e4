"""
GDPR cookie consent for FastAPI / Starlette applications.

    if consent_given(request, "analytics"):
        ...  # render analytics tags

Consent is resolved per request by ConsentMiddleware; these helpers read
what it published on request.state.
"""

from typing import Any

from cookie_consent.config import ConsentConfig, CookieGroup, cookie_groups, required_groups
from cookie_consent.policy import is_effective_consent
from cookie_consent.schemas.consent import ConsentRecord

__all__ = [
    "ConsentConfig",
    "ConsentRecord",
    "CookieGroup",
    "consent_given",
    "cookie_groups",
    "get_consent",
    "has_consent",
    "is_effective_consent",
    "needs_consent",
]


def get_consent(request: Any) -> ConsentRecord | None:
    """The consent ConsentMiddleware resolved for this request, if any."""
    consent = getattr(request.state, "consent", None)
    return consent if isinstance(consent, ConsentRecord) else None


def has_consent(request: Any) -> bool:
    """True when the visitor has made any consent choice at all."""
    return get_consent(request) is not None


def needs_consent(request: Any) -> bool:
    """True when the consent prompt should be shown."""
    return not is_effective_consent(get_consent(request))


def consent_given(request: Any, group: str) -> bool:
    """
    Check whether the visitor accepted a cookie group.

    Required groups (essential by default) are always consented.
    """
    storage = getattr(request.state, "consent_storage", None)
    config = storage.config if storage is not None else None
    if any(required.id == group for required in required_groups(config)):
        return True
    consent = get_consent(request)
    if not is_effective_consent(consent):
        return False
    return group in consent.groups
