"""Tests for workspace wiring and lifetime."""

import asyncio

import pytest

from stockroom_kernel.domain.entities import EntityType
from stockroom_kernel.domain.roles import Role
from stockroom_kernel.exceptions import PermissionDeniedError, SubscriptionClosedError
from stockroom_modules.workspace import build_workspace


class TestBuildWorkspace:
    def test_caches_share_one_store(self, workspace, store):
        asyncio.run(workspace.buyers.load())
        assert [b.get("buyer_name") for b in workspace.buyers.items] == [
            "Acme Fleet",
            "Northside Garage",
        ]
        assert workspace.parts.entity_type is EntityType.PARTS
        assert workspace.invoices.entity_type is EntityType.INVOICES
        assert workspace.transactions.entity_type is EntityType.TRANSACTIONS

    def test_settings_drive_wiring(self, workspace, policy):
        assert workspace.categories.ttl_seconds == policy.settings.category_cache_ttl_seconds

    def test_caches_are_guarded(self, workspace, identity, store):
        identity.role = Role.READ_ONLY
        with pytest.raises(PermissionDeniedError):
            asyncio.run(workspace.buyers.create({"buyer_name": "Harbor Marine"}))
        assert store.calls_for("create") == []

    def test_unguarded_workspace(self, store, identity, notifier, clock, policy):
        identity.role = Role.READ_ONLY
        ws = build_workspace(
            store, identity, notifier, clock=clock, policy=policy, guard_mutations=False
        )
        created = asyncio.run(ws.buyers.create({"buyer_name": "Harbor Marine"}))
        assert created.get("buyer_name") == "Harbor Marine"
        ws.teardown()


class TestWorkspaceLifetime:
    def test_teardown_closes_every_cache(self, workspace):
        workspace.teardown()
        for cache in (
            workspace.parts,
            workspace.buyers,
            workspace.invoices,
            workspace.transactions,
        ):
            assert not cache.mounted
            with pytest.raises(SubscriptionClosedError):
                asyncio.run(cache.load())

    def test_teardown_is_idempotent(self, workspace):
        workspace.teardown()
        workspace.teardown()
        assert not workspace.parts.mounted

    def test_async_context_manager(self, store, identity, notifier, clock, policy):
        async def run():
            async with build_workspace(
                store, identity, notifier, clock=clock, policy=policy
            ) as ws:
                await ws.parts.load()
                assert len(ws.parts.items) == 4
            return ws

        ws = asyncio.run(run())
        assert not ws.parts.mounted
        assert not ws.buyers.mounted
