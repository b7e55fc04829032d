"""
Shared fixtures for unit tests.
"""

import pytest

from tests.unit import factories


@pytest.fixture
def now():
    return factories.NOW


@pytest.fixture
def make_pr():
    """Factory for pull requests with sensible low-risk defaults."""
    return factories.make_pr
