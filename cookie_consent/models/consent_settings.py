"""
ConsentSettings model for persisted cookie consent (GDPR Article 7).

Each row is one consent decision by an identified visitor. Rows are
appended, never overwritten, and withdrawing consent in the browser does
not delete them, so the table doubles as the audit trail.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String

from cookie_consent.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class ConsentSettings(Base):
    __tablename__ = "consent_settings"

    id = Column(Integer, primary_key=True, index=True)
    # Host-defined identity (user id, account uuid, ...), stored as text
    user_id = Column(String(255), nullable=False, index=True)
    terms = Column(String(50), nullable=False)
    groups = Column(JSON, nullable=False, default=list)
    consented_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    inserted_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (Index("idx_consent_settings_user_consented", "user_id", "consented_at"),)

    def __repr__(self) -> str:
        return f"<ConsentSettings(user_id={self.user_id!r}, terms={self.terms!r}, groups={self.groups!r})>"
