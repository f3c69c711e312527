"""Shared pytest fixtures for the pyxap test suite."""

import pytest

from tests.fakes import FakeXap


@pytest.fixture
def fake_xap():
    return FakeXap()
