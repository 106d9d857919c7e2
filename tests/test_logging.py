"""Tests for the structured logging system (stockroom_kernel/logging_config.py)."""

import asyncio
import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from stockroom_kernel.domain.entities import EntityType
from stockroom_kernel.domain.roles import Role
from stockroom_kernel.domain.values import MovementType
from stockroom_kernel.exceptions import InvalidCategoryError, RemoteNotFoundError
from stockroom_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from stockroom_services.inventory_validator import StockShortage


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "stockroom.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("resource_loaded", extra={"item_count": 4, "request_id": 2})

        record = _parse_log(stream)
        assert record["item_count"] == 4
        assert record["request_id"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(actor_role=Role.ADMIN, entity_type=EntityType.PARTS):
            get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["actor_role"] == "Admin"
        assert record["entity_type"] == "parts"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_stockroom_exception_code_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InvalidCategoryError("Widgets")
        except InvalidCategoryError:
            get_logger("test").warning("category_rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INVALID_CATEGORY"
        assert record["exc_type"] == "InvalidCategoryError"
        assert record["exc_category"] == "Widgets"

    def test_remote_error_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise RemoteNotFoundError("get_item", "parts item 9 not found")
        except RemoteNotFoundError:
            get_logger("test").warning("lookup_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "REMOTE_NOT_FOUND"
        assert record["exc_status_code"] == 404
        assert record["exc_detail"] == "parts item 9 not found"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "actor_role" not in record
        assert "operation" not in record

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        shortage = StockShortage("BP-100", required=6, available=5, shortage=1, line_item_count=2)
        get_logger("test").info(
            "with_values",
            extra={
                "invoice_date": date(2024, 1, 31),
                "shortage": shortage,
                "amount": Decimal("12.50"),
                "movement_type": MovementType.SOLD,
                "failed_ids": frozenset({"2", "1"}),
            },
        )

        record = _parse_log(stream)
        assert record["invoice_date"] == "2024-01-31"
        assert record["shortage"] == str(shortage)
        assert record["amount"] == "12.50"
        assert record["movement_type"] == "Out (Sold)"
        assert record["failed_ids"] == ["1", "2"]

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_bind_and_get(self):
        with LogContext.bind(entity_id="7", operation="load"):
            assert LogContext.get_all() == {"entity_id": "7", "operation": "load"}

    def test_clear(self):
        with LogContext.bind(actor_role="User"):
            LogContext.clear()
            assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer(self):
        with LogContext.bind(entity_type="outer"):
            with LogContext.bind(entity_type="inner"):
                assert LogContext.get_all()["entity_type"] == "inner"
            assert LogContext.get_all()["entity_type"] == "outer"

    def test_bind_restores_none(self):
        assert "operation" not in LogContext.get_all()
        with LogContext.bind(operation="create"):
            assert LogContext.get_all()["operation"] == "create"
        assert "operation" not in LogContext.get_all()

    def test_none_leaves_field_unset(self):
        with LogContext.bind(actor_role=None, operation="load"):
            assert LogContext.get_all() == {"operation": "load"}

    def test_all_fields(self):
        with LogContext.bind(
            actor_role=Role.ADMIN,
            entity_type=EntityType.INVOICES,
            entity_id="12",
            operation="update",
        ):
            ctx = LogContext.get_all()
        assert ctx == {
            "actor_role": "Admin",
            "entity_type": "invoices",
            "entity_id": "12",
            "operation": "update",
        }

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.bind(request_id="r-1")

    def test_tasks_do_not_share_bound_fields(self):
        seen: dict[str, dict] = {}

        async def worker(name: str, gate: asyncio.Event) -> None:
            with LogContext.bind(entity_type=name):
                await gate.wait()
                seen[name] = LogContext.get_all()

        async def scenario() -> None:
            gate = asyncio.Event()
            tasks = [
                asyncio.create_task(worker("parts", gate)),
                asyncio.create_task(worker("buyers", gate)),
            ]
            await asyncio.sleep(0)
            gate.set()
            await asyncio.gather(*tasks)

        asyncio.run(scenario())
        assert seen["parts"]["entity_type"] == "parts"
        assert seen["buyers"]["entity_type"] == "buyers"
        assert "entity_type" not in LogContext.get_all()


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("stockroom").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.resource_cache").name == "stockroom.services.resource_cache"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "stockroom.deep.nested.module"
