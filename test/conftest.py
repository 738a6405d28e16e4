"""
Pytest configuration and fixtures for cookie consent tests
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120

# Settings are read at import time, so the environment must be in place first
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from cookie_consent.config import ConsentConfig  # noqa: E402
from cookie_consent.storage import ConsentStorage  # noqa: E402

from utils.mocks import InMemoryConsentRepository  # noqa: E402


@pytest.fixture
def consent_config() -> ConsentConfig:
    """Unsigned cookies, defaults everywhere else"""
    return ConsentConfig()


@pytest.fixture
def repository() -> InMemoryConsentRepository:
    repo = InMemoryConsentRepository()
    yield repo
    repo.clear()


@pytest.fixture
def storage(consent_config, repository) -> ConsentStorage:
    return ConsentStorage(consent_config, repository)
