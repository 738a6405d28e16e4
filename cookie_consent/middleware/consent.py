"""
Cookie Consent Middleware

Resolves the visitor's consent once per request and exposes it on
request.state for routes and templates:

    request.state.consent             ConsentRecord | None
    request.state.show_consent_modal  bool (no effective consent)
    request.state.cookie_groups       configured CookieGroup list
    request.state.consent_storage     the ConsentStorage in use

Must run inside SessionMiddleware and inside whatever sets the identity
attribute (ConsentConfig.user_id_key) on request.state. Starlette
middleware is LIFO: register this one BEFORE SessionMiddleware and the
auth middleware in create_app().
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from cookie_consent import codec
from cookie_consent.policy import is_effective_consent
from cookie_consent.storage import ConsentStorage

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastapi import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)


class ConsentMiddleware(BaseHTTPMiddleware):
    """
    Load consent from the tiered storage and flush cookie changes.

    Steps per request:
    1. For an identified visitor not yet synced in this session, run the
       newest-wins sync between cookie and store.
    2. Read consent (state → session → cookie → store).
    3. Cache a hit into the session if the session does not hold it yet.
    4. Publish consent and modal visibility on request.state.
    5. After the handler, apply any queued consent cookie change.
    """

    def __init__(self, app, storage: ConsentStorage | None = None, skip_session_cache: bool = False):
        super().__init__(app)
        self.storage = storage or ConsentStorage()
        self.skip_session_cache = skip_session_cache

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        storage = self.storage
        request.state.consent_storage = storage

        identity = storage.identity(request)
        if identity is not None and not storage.is_synced(request, identity):
            await storage.sync_on_login(request, identity, skip_session_cache=self.skip_session_cache)

        consent = await storage.read(request)

        if consent is not None and not self.skip_session_cache and storage.session_available(request):
            if storage.get_from_session(request) is None:
                request.session[storage.config.session_key] = codec.to_dict(consent)

        request.state.consent = consent
        request.state.show_consent_modal = not is_effective_consent(consent)
        request.state.cookie_groups = list(storage.config.cookie_groups)

        response = await call_next(request)
        return storage.apply_cookie(request, response)
