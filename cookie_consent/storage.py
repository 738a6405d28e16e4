"""
Tiered consent storage

Read priority (first hit wins, fastest first):
  1. request.state            (request-scoped, in memory)
  2. request.session          (server-side, Starlette SessionMiddleware)
  3. consent cookie           (client-held, optionally signed)
  4. ConsentRepository        (only when the request carries an identity)

Writes go to every tier, best-effort: a tier that fails is logged and
skipped so the others still get the record. Deleting clears tiers 1-3
only; persisted rows are the audit trail and are never removed here.

Cookie changes are queued on request.state and flushed onto the outgoing
response by apply_cookie (ConsentMiddleware does this automatically).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from itsdangerous import BadSignature, Signer

from cookie_consent import codec
from cookie_consent.config import ConsentConfig
from cookie_consent.exceptions import DecodeError, InvalidFormatError, InvalidRecordError
from cookie_consent.policy import newest
from cookie_consent.repository import ConsentRepository, NullConsentRepository
from cookie_consent.schemas.consent import ConsentRecord

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)

STATE_CONSENT = "consent"
STATE_PENDING_COOKIE = "consent_cookie_change"
SIGNER_SALT = "cookie-consent"


@dataclass(frozen=True)
class CookieChange:
    """A queued Set-Cookie; ``value=None`` deletes the cookie."""

    value: str | None
    secure: bool


class ConsentStorage:
    """Resolve and propagate a visitor's ConsentRecord across the four tiers."""

    def __init__(self, config: ConsentConfig | None = None, repository: ConsentRepository | None = None):
        self.config = config or ConsentConfig()
        self.repository = repository or NullConsentRepository()
        self._signer = Signer(self.config.signing_key, salt=SIGNER_SALT) if self.config.signing_key else None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def read(self, request: Request) -> ConsentRecord | None:
        """Return the first record found, checking tiers strictly in order."""
        record = self.get_from_state(request)
        if record is not None:
            return record

        record = self.get_from_session(request)
        if record is not None:
            return record

        record = self.get_from_cookie(request)
        if record is not None:
            return record

        identity = self.identity(request)
        if identity is None:
            return None
        return await self._load(identity)

    async def write(
        self,
        request: Request,
        record: ConsentRecord,
        *,
        skip_persistence: bool = False,
        skip_session_cache: bool = False,
    ) -> ConsentRecord:
        """Propagate ``record`` to every tier that accepts it."""
        setattr(request.state, STATE_CONSENT, record)
        self._put_cookie(request, record)
        if not skip_session_cache:
            self._put_session(request, record)

        identity = self.identity(request)
        if skip_persistence or identity is None:
            return record
        try:
            await self.repository.save(identity, record)
        except Exception as e:
            logger.warning("Consent store unavailable, skipped persisting for identity=%s: %s", identity, e)
        return record

    def delete(self, request: Request) -> None:
        """Withdraw consent from request state, session and cookie."""
        setattr(request.state, STATE_CONSENT, None)
        if self.session_available(request):
            request.session.pop(self.config.session_key, None)
        self._queue_cookie(request, CookieChange(value=None, secure=self._secure(request)))
        logger.info("Consent withdrawn for this browser")

    async def sync_on_login(self, request: Request, identity: Any, **write_options) -> ConsentRecord | None:
        """
        Reconcile cookie and persisted consent once a visitor is identified.

        The record with the later consented_at wins outright and is written
        through every tier, including the store for the new identity.
        """
        setattr(request.state, self.config.user_id_key, identity)
        persisted = await self._load(identity)
        from_cookie = self.get_from_cookie(request)
        winner = newest(persisted, from_cookie)

        if winner is not None:
            source = "cookie" if winner is from_cookie else "store"
            logger.debug("Consent sync for identity=%s: %s record wins", identity, source)
            await self.write(request, winner, **write_options)
        if not write_options.get("skip_session_cache"):
            self.mark_synced(request, identity)
        return winner

    async def sync_from_database(self, request: Request, identity: Any, **write_options) -> ConsentRecord | None:
        """Overwrite the fast tiers with the persisted record, if there is one."""
        persisted = await self._load(identity)
        if persisted is None:
            return None
        setattr(request.state, self.config.user_id_key, identity)
        return await self.write(request, persisted, **write_options)

    def apply_cookie(self, request: Request, response: Response) -> Response:
        """Flush a queued cookie change onto ``response``. Safe to call twice."""
        change: CookieChange | None = getattr(request.state, STATE_PENDING_COOKIE, None)
        if change is None:
            return response
        setattr(request.state, STATE_PENDING_COOKIE, None)

        if change.value is None:
            response.delete_cookie(
                self.config.cookie_name,
                path=self.config.cookie_path,
                secure=change.secure,
                httponly=self.config.cookie_http_only,
                samesite=self.config.cookie_same_site,
            )
        else:
            response.set_cookie(
                self.config.cookie_name,
                change.value,
                max_age=self.config.max_age_seconds,
                path=self.config.cookie_path,
                secure=change.secure,
                httponly=self.config.cookie_http_only,
                samesite=self.config.cookie_same_site,
            )
        return response

    # ------------------------------------------------------------------
    # Tier accessors
    # ------------------------------------------------------------------

    def identity(self, request: Request) -> Any:
        return getattr(request.state, self.config.user_id_key, None)

    def session_available(self, request: Request) -> bool:
        return "session" in request.scope

    def is_synced(self, request: Request, identity: Any) -> bool:
        if not self.session_available(request):
            return False
        return request.session.get(self.config.synced_identity_key) == str(identity)

    def mark_synced(self, request: Request, identity: Any) -> None:
        if self.session_available(request):
            request.session[self.config.synced_identity_key] = str(identity)

    def get_from_state(self, request: Request) -> ConsentRecord | None:
        record = getattr(request.state, STATE_CONSENT, None)
        return record if isinstance(record, ConsentRecord) else None

    def get_from_session(self, request: Request) -> ConsentRecord | None:
        if not self.session_available(request):
            return None
        payload = request.session.get(self.config.session_key)
        if payload is None:
            return None
        try:
            return codec.from_dict(payload)
        except DecodeError as e:
            logger.debug("Ignoring malformed session consent: %s", e.message)
            return None

    def get_from_cookie(self, request: Request) -> ConsentRecord | None:
        raw = request.cookies.get(self.config.cookie_name)
        if not raw:
            return None
        payload = self._unsign(raw)
        if payload is None:
            return None
        try:
            return codec.decode(payload)
        except (DecodeError, InvalidFormatError) as e:
            logger.debug("Ignoring unreadable consent cookie: %s", e.message)
            return None

    def encode_cookie(self, record: ConsentRecord) -> str:
        """Cookie value for ``record``, signed when a signing key is configured."""
        encoded = codec.encode(record)
        if self._signer is None:
            return encoded
        return self._signer.sign(encoded).decode("utf-8")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, identity: Any) -> ConsentRecord | None:
        try:
            return await self.repository.load_by_identity(identity)
        except Exception as e:
            logger.warning("Consent store unavailable for identity=%s: %s", identity, e)
            return None

    def _unsign(self, raw: str) -> str | None:
        if self._signer is None:
            return raw
        try:
            return self._signer.unsign(raw).decode("utf-8")
        except BadSignature:
            logger.warning("Consent cookie signature mismatch, ignoring cookie")
            return None

    def _secure(self, request: Request) -> bool:
        if self.config.cookie_secure is not None:
            return self.config.cookie_secure
        return request.url.scheme == "https"

    def _queue_cookie(self, request: Request, change: CookieChange) -> None:
        setattr(request.state, STATE_PENDING_COOKIE, change)

    def _put_cookie(self, request: Request, record: ConsentRecord) -> None:
        try:
            value = self.encode_cookie(record)
        except InvalidRecordError as e:
            logger.warning("Not setting consent cookie: %s", e.message)
            return
        self._queue_cookie(request, CookieChange(value=value, secure=self._secure(request)))

    def _put_session(self, request: Request, record: ConsentRecord) -> None:
        if not self.session_available(request):
            logger.debug("No session installed, skipping session tier")
            return
        try:
            request.session[self.config.session_key] = codec.to_dict(record)
        except InvalidRecordError as e:
            logger.warning("Not caching consent in session: %s", e.message)
