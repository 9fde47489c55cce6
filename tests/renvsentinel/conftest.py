"""Shared fixtures for renvsentinel tests.

No network access is needed: registries are served by ``httpx.MockTransport``.
"""

from __future__ import annotations

import pytest
from rproject import FakeRegistries


@pytest.fixture
def registries():
    return FakeRegistries()
