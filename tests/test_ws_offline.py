"""Offline tests for Stockroom WebSocket commands.

Handlers are invoked directly (unwrapping Home Assistant's async_response
scheduler) with a mocked connection; the sent envelope is inspected.

Scenarios:
- version and stats report integration info and counters
- document list/get, with a missing document mapped to not_found
- inventory list is display-ordered, filterable and flags low stock
- catalog and categories lists are ordered
- stock adjust records the connection user; ledger verify reports drift
- domain errors map to validation_error / storage_error envelopes
- setup registers each command once
"""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import MagicMock

import pytest
from custom_components.stockroom import ws as ws_mod
from custom_components.stockroom.const import (
    COLLECTION_INVENTORY,
    COLLECTION_ITEMS,
    DOMAIN,
    INTEGRATION_VERSION,
    STORAGE_VERSION,
)


def _conn(user_id: str | None = "user-1") -> MagicMock:
    conn = MagicMock()
    conn.user = MagicMock(id=user_id) if user_id else None
    return conn


async def _call(handler, hass, msg: dict[str, Any], conn: MagicMock | None = None) -> dict:
    conn = conn or _conn()
    await getattr(handler, "__wrapped__", handler)(hass, conn, msg)
    assert conn.send_message.call_count == 1
    return conn.send_message.call_args.args[0]


async def _seed_catalog(documents) -> None:
    await documents.async_set(
        COLLECTION_ITEMS,
        "item-laptop",
        {
            "name": "Laptop",
            "category": "cat-1",
            "subcategory": "Laptops",
            "variants": [{"variant_id": "var-l", "sku": "LAP", "reorder_level": 2}],
        },
    )
    await documents.async_set(
        COLLECTION_ITEMS,
        "item-phone",
        {
            "name": "Phone",
            "category": "cat-1",
            "subcategory": "Phones",
            "variants": [{"variant_id": "var-p", "sku": "PHN"}],
        },
    )


@pytest.mark.asyncio
async def test_version(ready_hass) -> None:
    res = await _call(ws_mod.ws_version, ready_hass, {"id": 1, "type": "stockroom/version"})

    assert res["success"] is True
    assert res["result"] == {
        "integration_version": INTEGRATION_VERSION,
        "storage_version": STORAGE_VERSION,
    }


@pytest.mark.asyncio
async def test_stats(ready_hass, ledger) -> None:
    await ledger.async_adjust_stock("loc-1", "item-x", "var-1", 2, None, None)

    res = await _call(ws_mod.ws_stats, ready_hass, {"id": 2, "type": "stockroom/stats"})

    assert res["result"]["movements_total"] == 1
    assert res["result"]["locations_total"] == 2
    assert res["result"]["low_stock_count"] == 1


@pytest.mark.asyncio
async def test_document_list_and_get(ready_hass) -> None:
    listed = await _call(
        ws_mod.ws_document_list,
        ready_hass,
        {"id": 3, "type": "stockroom/document/list", "collection": "locations"},
    )
    got = await _call(
        ws_mod.ws_document_get,
        ready_hass,
        {"id": 4, "type": "stockroom/document/get", "collection": "locations", "doc_id": "loc-2"},
    )

    assert {row["id"] for row in listed["result"]} == {"loc-1", "loc-2"}
    assert got["result"]["data"]["name"] == "Downtown Office"


@pytest.mark.asyncio
async def test_document_get_missing_is_not_found(ready_hass, caplog) -> None:
    caplog.set_level(logging.WARNING)

    res = await _call(
        ws_mod.ws_document_get,
        ready_hass,
        {"id": 5, "type": "stockroom/document/get", "collection": "suppliers", "doc_id": "s-1"},
    )

    assert res["id"] == 5
    assert res["success"] is False
    assert res["error"]["code"] == "not_found"
    record = next(r for r in caplog.records if getattr(r, "op", None) == "document_get")
    assert record.collection == "suppliers"
    assert record.doc_id == "s-1"


@pytest.mark.asyncio
async def test_inventory_list_is_display_ordered(ready_hass, ledger, documents) -> None:
    await _seed_catalog(documents)
    await ledger.async_adjust_stock("loc-2", "item-laptop", "var-l", 1, None, None)
    await ledger.async_adjust_stock("loc-1", "item-phone", "var-p", 9, None, None)
    await ledger.async_adjust_stock("loc-1", "item-laptop", "var-l", 4, None, None)
    await ledger.async_adjust_stock("loc-1", "item-ghost", "var-g", 7, None, None)

    res = await _call(
        ws_mod.ws_inventory_list, ready_hass, {"id": 6, "type": "stockroom/inventory/list"}
    )

    rows = res["result"]
    # "Downtown Office" sorts before "Main Warehouse"; the unknown item trails its location
    assert [(r["location_id"], r["item_id"]) for r in rows] == [
        ("loc-2", "item-laptop"),
        ("loc-1", "item-laptop"),
        ("loc-1", "item-phone"),
        ("loc-1", "item-ghost"),
    ]
    assert rows[0]["location_name"] == "Downtown Office"
    assert rows[0]["low_stock"] is True
    assert rows[1]["low_stock"] is False
    assert rows[3]["item_name"] is None


@pytest.mark.asyncio
async def test_inventory_list_filters(ready_hass, ledger, documents) -> None:
    await _seed_catalog(documents)
    await ledger.async_adjust_stock("loc-2", "item-laptop", "var-l", 1, None, None)
    await ledger.async_adjust_stock("loc-1", "item-phone", "var-p", 9, None, None)
    await ledger.async_adjust_stock("loc-1", "item-laptop", "var-l", 1, None, None)

    by_location = await _call(
        ws_mod.ws_inventory_list,
        ready_hass,
        {"id": 7, "type": "stockroom/inventory/list", "location_id": "loc-1"},
    )
    low_only = await _call(
        ws_mod.ws_inventory_list,
        ready_hass,
        {"id": 8, "type": "stockroom/inventory/list", "low_stock_only": True},
    )

    assert {r["location_id"] for r in by_location["result"]} == {"loc-1"}
    assert [r["id"] for r in low_only["result"]] == ["loc-2:var-l", "loc-1:var-l"]


@pytest.mark.asyncio
async def test_catalog_and_categories_lists(ready_hass, documents) -> None:
    await _seed_catalog(documents)
    await documents.async_set("categories", "cat-0", {"name": "Accessories", "sort_order": 0})

    catalog = await _call(
        ws_mod.ws_catalog_list, ready_hass, {"id": 9, "type": "stockroom/catalog/list"}
    )
    categories = await _call(
        ws_mod.ws_categories_list, ready_hass, {"id": 10, "type": "stockroom/categories/list"}
    )

    assert [r["id"] for r in catalog["result"]] == ["item-laptop", "item-phone"]
    assert catalog["result"][0]["category_name"] == "Electronics"
    assert [c["id"] for c in categories["result"]] == ["cat-0", "cat-1"]


@pytest.mark.asyncio
async def test_stock_adjust_records_connection_user(ready_hass, ledger) -> None:
    res = await _call(
        ws_mod.ws_stock_adjust,
        ready_hass,
        {
            "id": 11,
            "type": "stockroom/stock/adjust",
            "location_id": "loc-1",
            "item_id": "item-x",
            "variant_id": "var-1",
            "quantity_delta": 6,
            "reference": "PO-1",
        },
        conn=_conn("ha-user"),
    )

    assert res["result"] == {"new_quantity": 6}
    (movement,) = await ledger.async_list_movements()
    assert movement.user_id == "ha-user"

    movements = await _call(
        ws_mod.ws_movements_list,
        ready_hass,
        {"id": 12, "type": "stockroom/movements/list", "variant_id": "var-1"},
    )
    assert [m["quantity_change"] for m in movements["result"]] == [6]


@pytest.mark.asyncio
async def test_stock_adjust_validation_error(ready_hass) -> None:
    res = await _call(
        ws_mod.ws_stock_adjust,
        ready_hass,
        {
            "id": 13,
            "type": "stockroom/stock/adjust",
            "location_id": "loc-1",
            "item_id": "item-x",
            "variant_id": "var-1",
            "quantity_delta": 0,
        },
        conn=_conn(None),
    )

    assert res["success"] is False
    assert res["error"]["code"] == "validation_error"


@pytest.mark.asyncio
async def test_storage_fault_maps_to_storage_error(ready_hass, backend, caplog) -> None:
    backend.fail_save = True
    caplog.set_level(logging.ERROR)

    res = await _call(
        ws_mod.ws_stock_adjust,
        ready_hass,
        {
            "id": 14,
            "type": "stockroom/stock/adjust",
            "location_id": "loc-1",
            "item_id": "item-x",
            "variant_id": "var-1",
            "quantity_delta": 2,
        },
    )

    assert res["error"]["code"] == "storage_error"
    assert any(getattr(r, "op", None) == "stock_adjust" for r in caplog.records)


@pytest.mark.asyncio
async def test_ledger_verify(ready_hass, ledger, documents) -> None:
    await ledger.async_adjust_stock("loc-1", "item-x", "var-1", 3, None, None)
    await documents.async_merge(COLLECTION_INVENTORY, "loc-1:var-1", {"quantity": 0})

    res = await _call(
        ws_mod.ws_ledger_verify, ready_hass, {"id": 15, "type": "stockroom/ledger/verify"}
    )

    (entry,) = res["result"]["discrepancies"]
    assert entry["record_id"] == "loc-1:var-1"
    assert entry["kind"] == "mismatch"


@pytest.mark.asyncio
async def test_commands_before_setup_report_storage_error(hass) -> None:
    res = await _call(ws_mod.ws_stats, hass, {"id": 16, "type": "stockroom/stats"})

    assert res["error"]["code"] == "storage_error"


def test_setup_registers_commands_once(hass, monkeypatch) -> None:
    registered = []
    monkeypatch.setattr(
        ws_mod.websocket_api,
        "async_register_command",
        lambda _hass, handler: registered.append(handler),
    )

    ws_mod.setup(hass)
    ws_mod.setup(hass)

    assert len(registered) == 10
    assert hass.data[DOMAIN]["ws_handlers"] == registered
    assert hass.data[DOMAIN]["ws_registered"] is True
