"""Tests for the SQLAlchemy-backed list store (SQLite in memory)."""

import asyncio
import threading

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from stockroom_kernel.db.engine import session_scope
from stockroom_kernel.domain.entities import EntityType
from stockroom_kernel.domain.values import InvoiceStatus
from stockroom_kernel.exceptions import (
    AuthenticationRequiredError,
    RemoteNotFoundError,
    RemoteOperationError,
    RemoteServerError,
)
from stockroom_kernel.models import ListItemRecord
from stockroom_services.list_store import QueryOptions
from stockroom_services.resource_cache import ResourceCache
from stockroom_services.sql_list_store import SqlListStore, database_error

TOKEN = "token"


@pytest.fixture
def sql_store(sql_engine, clock):
    return SqlListStore(clock=clock, actor="tester")


class TestSqlListStore:
    def test_create_and_get_item(self, sql_store):
        created = asyncio.run(
            sql_store.create(
                EntityType.INVOICES,
                TOKEN,
                {"id": "INV-1", "status": InvoiceStatus.DRAFT, "total_amount": "0"},
            )
        )
        fetched = asyncio.run(sql_store.get_item(EntityType.INVOICES, TOKEN, "INV-1"))

        assert created.entity_id == "INV-1"
        assert fetched.get("status") == "Draft"
        assert fetched.created_by == "tester"

    def test_generated_ids_are_unique(self, sql_store):
        first = asyncio.run(sql_store.create(EntityType.BUYERS, TOKEN, {"buyer_name": "A"}))
        second = asyncio.run(sql_store.create(EntityType.BUYERS, TOKEN, {"buyer_name": "B"}))
        assert first.entity_id != second.entity_id

    def test_lists_are_separate(self, sql_store):
        asyncio.run(sql_store.create(EntityType.BUYERS, TOKEN, {"buyer_name": "A"}))
        assert asyncio.run(sql_store.get(EntityType.PARTS, TOKEN)) == []

    def test_get_applies_query(self, sql_store):
        for part_id, status in (("C-3", "Active"), ("A-1", "Active"), ("B-2", "Inactive")):
            asyncio.run(
                sql_store.create(EntityType.PARTS, TOKEN, {"part_id": part_id, "status": status})
            )
        query = QueryOptions.where(status="Active").ordered("part_id")
        parts = asyncio.run(sql_store.get(EntityType.PARTS, TOKEN, query))
        assert [p.get("part_id") for p in parts] == ["A-1", "C-3"]

    def test_update_persists_merged_fields(self, sql_store, clock):
        asyncio.run(
            sql_store.create(EntityType.PARTS, TOKEN, {"id": "p1", "part_id": "A-1", "notes": ""})
        )
        clock.advance(30)
        asyncio.run(sql_store.update(EntityType.PARTS, TOKEN, "p1", {"notes": "recount"}))

        with session_scope() as session:
            row = session.execute(
                select(ListItemRecord).where(ListItemRecord.item_key == "p1")
            ).scalar_one()
            assert row.fields == {"part_id": "A-1", "notes": "recount"}

    def test_missing_item(self, sql_store):
        with pytest.raises(RemoteNotFoundError):
            asyncio.run(sql_store.update(EntityType.PARTS, TOKEN, "nope", {"notes": "x"}))

    def test_credential_required(self, sql_store):
        with pytest.raises(AuthenticationRequiredError):
            asyncio.run(sql_store.get(EntityType.PARTS, ""))

    def test_delete_batch(self, sql_store):
        for key in ("a", "b"):
            asyncio.run(sql_store.create(EntityType.PARTS, TOKEN, {"id": key, "part_id": key}))
        report = asyncio.run(sql_store.delete_batch(EntityType.PARTS, TOKEN, ["a", "zz", "b"]))
        assert report.succeeded == 2
        assert report.failed_ids == frozenset({"zz"})
        assert asyncio.run(sql_store.get(EntityType.PARTS, TOKEN)) == []

    def test_backs_a_resource_cache(self, sql_store, identity, notifier):
        cache = ResourceCache(EntityType.BUYERS, sql_store, identity, notifier)
        asyncio.run(cache.create({"buyer_name": "Harbor Marine"}))
        assert [b.get("buyer_name") for b in cache.items] == ["Harbor Marine"]
        assert notifier.successes == ["Buyer created successfully!"]


class TestDatabaseErrors:
    def test_duplicate_key_is_a_conflict(self, sql_store):
        asyncio.run(sql_store.create(EntityType.PARTS, TOKEN, {"id": "p1", "part_id": "A-1"}))
        with pytest.raises(RemoteOperationError) as exc_info:
            asyncio.run(sql_store.create(EntityType.PARTS, TOKEN, {"id": "p1", "part_id": "B-2"}))

        assert exc_info.value.status_code == 409
        assert exc_info.value.code == "REMOTE_OPERATION_FAILED"
        assert isinstance(exc_info.value.__cause__, IntegrityError)
        [part] = asyncio.run(sql_store.get(EntityType.PARTS, TOKEN))
        assert part.get("part_id") == "A-1"

    def test_unavailable_database_is_a_server_error(self):
        error = database_error(
            "get", OperationalError("SELECT 1", {}, Exception("database is locked"))
        )
        assert isinstance(error, RemoteServerError)
        assert error.status_code == 503
        assert error.detail == "database is locked"

    def test_other_failures_are_server_errors(self):
        error = database_error("update", SQLAlchemyError("boom"))
        assert isinstance(error, RemoteServerError)
        assert error.status_code == 500

    def test_session_work_runs_off_the_event_loop_thread(self, sql_store):
        async def scenario():
            loop_thread = threading.get_ident()
            worker_thread = await sql_store._run("get", lambda session: threading.get_ident())
            return loop_thread, worker_thread

        loop_thread, worker_thread = asyncio.run(scenario())
        assert loop_thread != worker_thread
