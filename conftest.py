"""
Pytest configuration for the UM-32 test suite.

    python -m pytest                     # everything
    python -m pytest -m "not property"   # skip the hypothesis runs
    HYPOTHESIS_PROFILE=thorough python -m pytest -m property
"""

import os

import pytest
from hypothesis import HealthCheck, settings

settings.register_profile(
    "um32", max_examples=100, deadline=None,
    suppress_health_check=[HealthCheck.too_slow])
settings.register_profile(
    "thorough", max_examples=2000, deadline=None,
    suppress_health_check=[HealthCheck.too_slow])
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "um32"))


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "property: hypothesis property tests (deselect with -m 'not property')")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep user-level settings from leaking into tests."""
    for var in ("UM32_HISTORY", "UM32_LOG", "NO_COLOR"):
        monkeypatch.delenv(var, raising=False)
