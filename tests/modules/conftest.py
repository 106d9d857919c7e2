"""Fixtures for module service tests: a fully wired workspace over the seeded store."""

import pytest

from stockroom_modules.workspace import build_workspace


@pytest.fixture
def workspace(store, identity, notifier, clock, policy):
    ws = build_workspace(store, identity, notifier, clock=clock, policy=policy)
    yield ws
    ws.teardown()
