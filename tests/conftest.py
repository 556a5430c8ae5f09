"""Shared fixtures for kubedelta tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from tests.fakes import FakeSource, make_deployment


@pytest.fixture()
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture()
def deployment() -> Callable[..., dict[str, Any]]:
    """Factory fixture for raw Deployment dicts."""
    return make_deployment
