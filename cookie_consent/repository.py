"""
Persistent consent store (tier 4)

The resolver only needs two calls, load_by_identity and save. Hosts that
do not persist consent get NullConsentRepository, so the resolver can call
tier 4 unconditionally.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cookie_consent.exceptions import ConsentStoreError
from cookie_consent.models.consent_settings import ConsentSettings
from cookie_consent.policy import utc_now
from cookie_consent.schemas.consent import ConsentRecord

logger = logging.getLogger(__name__)


class ConsentRepository(Protocol):
    """
    Tier 4 backend supplied by the host.

    Implementations should raise ConsentStoreError when the backend is
    unreachable. ConsentStorage logs any exception from these calls and
    carries on with the other tiers.
    """

    async def load_by_identity(self, identity: Any) -> ConsentRecord | None: ...

    async def save(self, identity: Any, record: ConsentRecord) -> None: ...


class NullConsentRepository:
    """Tier 4 disabled: nothing is ever found and saves are dropped."""

    async def load_by_identity(self, identity: Any) -> ConsentRecord | None:
        return None

    async def save(self, identity: Any, record: ConsentRecord) -> None:
        return None


def _to_record(row: ConsentSettings) -> ConsentRecord:
    return ConsentRecord(
        policy_version=row.terms,
        groups=list(row.groups or []),
        consented_at=row.consented_at,
        expires_at=row.expires_at,
    )


def _timestamp(value: datetime | str | None) -> datetime | None:
    # Unparsed cookie timestamps are not persisted
    return value if isinstance(value, datetime) else None


def _as_stored(record: ConsentRecord) -> ConsentRecord:
    """The record as it reads back after a save."""
    return record.model_copy(
        update={"consented_at": _timestamp(record.consented_at), "expires_at": _timestamp(record.expires_at)}
    )


# Undated rows sort after dated ones on every backend (PostgreSQL puts NULLs first on DESC)
NEWEST_FIRST = (ConsentSettings.consented_at.desc().nulls_last(), ConsentSettings.id.desc())


class SQLAlchemyConsentRepository:
    """
    Consent history stored in the consent_settings table.

    ``session_factory`` is any zero-argument callable returning an
    AsyncSession context manager, e.g. ``AsyncSessionLocal``.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def _latest_row(self, db: AsyncSession, identity: str) -> ConsentSettings | None:
        result = await db.execute(
            select(ConsentSettings)
            .where(ConsentSettings.user_id == identity)
            .order_by(*NEWEST_FIRST)
            .limit(1)
        )
        return result.scalars().first()

    async def load_by_identity(self, identity: Any) -> ConsentRecord | None:
        """Return the most recently granted consent for the identity, if any."""
        try:
            async with self.session_factory() as db:
                row = await self._latest_row(db, str(identity))
        except SQLAlchemyError as e:
            logger.warning("Failed to load consent for identity=%s: %s", identity, e)
            raise ConsentStoreError(str(e), operation="load") from e
        return _to_record(row) if row else None

    async def save(self, identity: Any, record: ConsentRecord) -> None:
        """
        Append the record to the identity's consent history.

        Saving the record that is already the newest row is a no-op, so
        re-propagating a loaded record does not duplicate audit rows.
        """
        try:
            async with self.session_factory() as db:
                latest = await self._latest_row(db, str(identity))
                if latest is not None and _to_record(latest) == _as_stored(record):
                    logger.debug("Consent for identity=%s unchanged, not saving", identity)
                    return
                db.add(
                    ConsentSettings(
                        user_id=str(identity),
                        terms=record.policy_version,
                        groups=list(record.groups),
                        consented_at=_timestamp(record.consented_at),
                        expires_at=_timestamp(record.expires_at),
                    )
                )
                await db.commit()
        except SQLAlchemyError as e:
            logger.warning("Failed to save consent for identity=%s: %s", identity, e)
            raise ConsentStoreError(str(e), operation="save") from e

        logger.info(
            "Consent recorded: identity=%s terms=%s groups=%s",
            identity,
            record.policy_version,
            ",".join(record.groups),
        )

    async def history(self, identity: Any) -> list[ConsentRecord]:
        """Return every stored consent for the identity, newest first."""
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(ConsentSettings)
                    .where(ConsentSettings.user_id == str(identity))
                    .order_by(*NEWEST_FIRST)
                )
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise ConsentStoreError(str(e), operation="history") from e
        return [_to_record(row) for row in rows]

    async def active_consents(self, identity: Any, now: datetime | None = None) -> list[ConsentRecord]:
        """Return stored consents for the identity that have not expired."""
        now = now or utc_now()
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(ConsentSettings)
                    .where(
                        ConsentSettings.user_id == str(identity),
                        or_(ConsentSettings.expires_at.is_(None), ConsentSettings.expires_at > now),
                    )
                    .order_by(*NEWEST_FIRST)
                )
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise ConsentStoreError(str(e), operation="active_consents") from e
        return [_to_record(row) for row in rows]
