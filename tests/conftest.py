"""Shared test fixtures and configuration for cmp-consent tests."""

from pathlib import Path
import sys

import pytest

# Add project root and the tests directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from cmp_consent.config import CMPSettings
from cmp_consent.descriptors import SelectorDrivenDescriptor
from cmp_consent.models import CookieStorageSpec

from fakes import FIXTURES_DIR, TEST_ATTEMPT_TIMEOUT_MS, TEST_TIMEOUT_MS, FakePage


@pytest.fixture
def page():
    """Empty fake page."""
    return FakePage()


@pytest.fixture
def banner_page():
    """Fake page with a visible banner whose accept button sets ``consent=1``."""
    page = FakePage()
    page.add_element("#banner")
    page.add_element("#accept", sets_cookies={"consent": "1"})
    return page


@pytest.fixture
def test_settings():
    """Settings with small budgets for fast tests."""
    return CMPSettings(
        default_timeout_ms=TEST_TIMEOUT_MS,
        attempt_timeout_ms=TEST_ATTEMPT_TIMEOUT_MS,
        confirmation_timeout_ms=50,
        include_builtin=False,
    )


@pytest.fixture
def consent_descriptor():
    """Selector-driven descriptor matching ``banner_page``."""
    return SelectorDrivenDescriptor(
        "testcmp",
        CookieStorageSpec(names=["consent"]),
        presence_selectors=["#banner"],
        accept_all_selectors=["#accept"],
        timeout_ms=TEST_TIMEOUT_MS,
        attempt_timeout_ms=TEST_ATTEMPT_TIMEOUT_MS,
    )


@pytest.fixture
def fixtures_dir():
    """Directory holding declarative descriptor fixtures."""
    return FIXTURES_DIR


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests requiring a browser"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
