"""
Consent form endpoints

- GET  /consent          current consent status (JSON)
- POST /consent          save a consent choice from the consent modal form
- POST /consent/delete   withdraw consent in this browser
"""

import json
import logging
from typing import Any
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from cookie_consent import codec
from cookie_consent.config import CookieGroup
from cookie_consent.dependencies import ConsentState, get_consent_storage, load_consent
from cookie_consent.policy import build_consent
from cookie_consent.storage import ConsentStorage

router = APIRouter(tags=["Cookie Consent"])

logger = logging.getLogger(__name__)

DEFAULT_GROUPS = ["essential"]


class ConsentStatus(BaseModel):
    consent: dict[str, Any] | None
    show_consent_modal: bool
    cookie_groups: list[CookieGroup]


def parse_groups(values: list[str]) -> list[str]:
    """
    Groups arrive either as repeated form fields or as one JSON array
    string posted by client script. Anything unusable falls back to
    essential only.
    """
    if len(values) == 1 and values[0].lstrip().startswith("["):
        try:
            decoded = json.loads(values[0])
        except ValueError:
            return list(DEFAULT_GROUPS)
        if isinstance(decoded, list) and all(isinstance(group, str) for group in decoded):
            return decoded
        return list(DEFAULT_GROUPS)
    groups = [value for value in values if value]
    return groups or list(DEFAULT_GROUPS)


def get_redirect_url(request: Request, redirect_to: str | None) -> str:
    """Only same-site paths are accepted as redirect targets."""
    if redirect_to:
        parsed = urlparse(redirect_to)
        if not parsed.scheme and not parsed.netloc and parsed.path.startswith("/"):
            return parsed.path
    referer = request.headers.get("referer")
    if referer:
        path = urlparse(referer).path
        if path:
            return path
    return "/"


@router.get("/consent", response_model=ConsentStatus)
async def get_consent_status(state: ConsentState = Depends(load_consent)) -> ConsentStatus:
    return ConsentStatus(
        consent=codec.to_dict(state.consent) if state.consent else None,
        show_consent_modal=state.show_consent_modal,
        cookie_groups=state.cookie_groups,
    )


@router.post("/consent")
async def update_consent(
    request: Request,
    storage: ConsentStorage = Depends(get_consent_storage),
) -> RedirectResponse:
    """Save the submitted consent choice to every storage tier."""
    form = await request.form()
    groups = parse_groups([str(value) for value in form.getlist("groups")])
    terms = str(form.get("terms") or storage.config.terms_version)

    record = build_consent(terms, groups, lifetime_days=storage.config.max_age_days)
    await storage.write(request, record)
    logger.info("Consent updated: terms=%s groups=%s", terms, ",".join(record.groups))

    redirect_to = form.get("redirect_to")
    response = RedirectResponse(
        get_redirect_url(request, str(redirect_to) if redirect_to else None),
        status_code=status.HTTP_303_SEE_OTHER,
    )
    return storage.apply_cookie(request, response)


@router.post("/consent/delete")
async def delete_consent(
    request: Request,
    storage: ConsentStorage = Depends(get_consent_storage),
) -> RedirectResponse:
    """Clear consent from this browser. Persisted history is kept."""
    form = await request.form()
    storage.delete(request)

    redirect_to = form.get("redirect_to")
    response = RedirectResponse(
        get_redirect_url(request, str(redirect_to) if redirect_to else None),
        status_code=status.HTTP_303_SEE_OTHER,
    )
    return storage.apply_cookie(request, response)
