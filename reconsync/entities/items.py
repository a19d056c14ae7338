"""Items: master data with per-warehouse stock merged by warehouse id.

A warehouse that disappears from the item's detail keeps its last stored
balance, like a stale sales return line.
"""

from __future__ import annotations

from typing import Any, Mapping

from .base import (
    ChildPolicy,
    EntitySpec,
    as_number,
    detail_lines,
    dig,
    first_of,
)

SCHEMA_ITEMS_SQL = """
CREATE TABLE IF NOT EXISTS items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    item_no TEXT,
    item_name TEXT,
    branch_name TEXT,
    category_id TEXT,
    category_name TEXT,
    item_type TEXT,
    unit_name TEXT,
    brand_name TEXT,
    default_warehouse TEXT,
    balance REAL DEFAULT 0,
    tax_included INTEGER DEFAULT 0,
    suspended INTEGER DEFAULT 0,
    opt_lock INTEGER DEFAULT 0,
    raw_data TEXT,
    synced_at TEXT,
    UNIQUE (item_id, branch_id)
);
CREATE INDEX IF NOT EXISTS idx_items_item_no ON items (branch_id, item_no);

CREATE TABLE IF NOT EXISTS item_warehouse_stock (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    warehouse_id TEXT NOT NULL,
    warehouse_name TEXT,
    balance REAL DEFAULT 0,
    is_default INTEGER DEFAULT 0,
    UNIQUE (item_id, branch_id, warehouse_id),
    FOREIGN KEY (item_id, branch_id) REFERENCES items (item_id, branch_id) ON DELETE CASCADE
);
"""


class ItemSpec(EntitySpec):
    name = "item"
    description = "Item master data with warehouse stock"
    endpoint = "item"
    header_table = "items"
    id_column = "item_id"
    child_table = "item_warehouse_stock"
    child_policy = ChildPolicy.MERGE_BY_SEQUENCE
    child_parent_columns = ("item_id", "branch_id")
    child_key = ("item_id", "branch_id", "warehouse_id")
    date_filter_type = None
    date_column = None
    schema_sql = SCHEMA_ITEMS_SQL

    def map_header(
        self, payload: Mapping[str, Any], scope_key: str, scope_name: str | None
    ) -> dict[str, Any]:
        record_id = payload.get("id")
        warehouses = detail_lines(payload, "detailWarehouseData")
        default = next(
            (wh for wh in warehouses if wh.get("defaultWarehouse") is True),
            warehouses[0] if warehouses else None,
        )
        return {
            "item_no": payload.get("no") or f"ITEM-{record_id}",
            "item_name": first_of(
                payload, "name", "shortName", default=f"Unknown Item {record_id}"
            ),
            "branch_name": scope_name,
            "category_id": first_of(payload, "itemCategoryId", "itemCategory.id"),
            "category_name": dig(payload, "itemCategory.name"),
            "item_type": first_of(payload, "itemTypeName", "itemType"),
            "unit_name": first_of(payload, "unit1.name", "unit1Name"),
            "brand_name": first_of(payload, "itemBrand.name", "brand.name"),
            "default_warehouse": None if default is None else default.get("warehouseName"),
            "balance": as_number(payload.get("balance")),
            "tax_included": int(bool(payload.get("taxIncluded"))),
            "suspended": int(bool(payload.get("suspended"))),
        }

    def map_children(self, payload: Mapping[str, Any]) -> list[dict[str, Any]]:
        rows = []
        for line in detail_lines(payload, "detailWarehouseData"):
            warehouse_id = line.get("id")
            rows.append(
                {
                    "warehouse_id": None if warehouse_id is None else str(warehouse_id),
                    "warehouse_name": line.get("warehouseName"),
                    "balance": as_number(line.get("balance")),
                    "is_default": int(line.get("defaultWarehouse") is True),
                }
            )
        return rows
