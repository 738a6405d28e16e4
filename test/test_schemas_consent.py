"""
Tests for the ConsentRecord schema
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from cookie_consent.schemas.consent import ConsentRecord


class TestConsentRecord:
    def test_policy_version_required(self):
        with pytest.raises(ValidationError):
            ConsentRecord(groups=["essential"])

    def test_policy_version_not_empty(self):
        with pytest.raises(ValidationError):
            ConsentRecord(policy_version="", groups=["essential"])

    def test_groups_default_empty(self):
        assert ConsentRecord(policy_version="v1.0").groups == []

    def test_groups_must_be_strings(self):
        with pytest.raises(ValidationError):
            ConsentRecord(policy_version="v1.0", groups=["essential", 7])

    def test_duplicate_groups_collapsed(self):
        record = ConsentRecord(policy_version="v1.0", groups=["essential", "analytics", "essential"])

        assert record.groups == ["essential", "analytics"]

    def test_naive_datetime_taken_as_utc(self):
        record = ConsentRecord(policy_version="v1.0", consented_at=datetime(2024, 1, 1, 8, 0, 0))

        assert record.consented_at == datetime(2024, 1, 1, 8, 0, 0, tzinfo=timezone.utc)

    def test_datetimes_truncated_to_seconds(self):
        record = ConsentRecord(
            policy_version="v1.0",
            expires_at=datetime(2025, 1, 1, 0, 0, 0, 500000, tzinfo=timezone(timedelta(hours=-5))),
        )

        assert record.expires_at == datetime(2025, 1, 1, 5, 0, 0, tzinfo=timezone.utc)

    def test_records_are_immutable(self):
        record = ConsentRecord(policy_version="v1.0", groups=["essential"])

        with pytest.raises(ValidationError):
            record.policy_version = "v2.0"
