"""
Route-level consent dependencies.

    @router.get("/dashboard")
    async def dashboard(state: ConsentState = Depends(load_consent)):
        ...

    @router.get("/tracked", dependencies=[Depends(require_consent)])
    async def tracked():
        ...
"""

from dataclasses import dataclass, field

from fastapi import Request

from cookie_consent.config import ConsentConfig, CookieGroup
from cookie_consent.exceptions import ConsentRequiredError
from cookie_consent.policy import is_effective_consent
from cookie_consent.schemas.consent import ConsentRecord
from cookie_consent.storage import ConsentStorage

_fallback_storage: ConsentStorage | None = None


@dataclass
class ConsentState:
    consent: ConsentRecord | None
    show_consent_modal: bool
    cookie_groups: list[CookieGroup] = field(default_factory=list)


def get_consent_storage(request: Request) -> ConsentStorage:
    """Storage installed by ConsentMiddleware, or a settings-based default."""
    global _fallback_storage
    storage = getattr(request.state, "consent_storage", None)
    if storage is not None:
        return storage
    if _fallback_storage is None:
        _fallback_storage = ConsentStorage(ConsentConfig.from_settings())
    return _fallback_storage


async def load_consent(request: Request) -> ConsentState:
    """Resolve consent for the current request and derive modal visibility."""
    storage = get_consent_storage(request)
    consent = await storage.read(request)
    return ConsentState(
        consent=consent,
        show_consent_modal=not is_effective_consent(consent),
        cookie_groups=list(storage.config.cookie_groups),
    )


async def require_consent(request: Request) -> ConsentRecord:
    """Reject the request with a redirect to the consent page unless consent is effective."""
    storage = get_consent_storage(request)
    consent = await storage.read(request)
    if not is_effective_consent(consent):
        raise ConsentRequiredError(redirect_to=storage.config.consent_url)
    return consent
