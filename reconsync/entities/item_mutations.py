"""Stock mutation history: flat rows taken straight from the listing."""

from __future__ import annotations

from typing import Any, Mapping

from .base import ChildPolicy, EntitySpec, as_number, first_of, remote_date_to_iso

SCHEMA_ITEM_MUTATIONS_SQL = """
CREATE TABLE IF NOT EXISTS item_mutations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    mutation_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    mutation_number TEXT,
    branch_name TEXT,
    trans_date TEXT,
    mutation_type TEXT,
    warehouse_id TEXT,
    warehouse_name TEXT,
    total_quantity REAL DEFAULT 0,
    total_value REAL DEFAULT 0,
    opt_lock INTEGER DEFAULT 0,
    raw_data TEXT,
    synced_at TEXT,
    UNIQUE (mutation_id, branch_id)
);
CREATE INDEX IF NOT EXISTS idx_item_mutations_trans_date ON item_mutations (branch_id, trans_date);
"""


class ItemMutationSpec(EntitySpec):
    name = "stock-mutation"
    description = "Stock mutation history (listing rows, warehouse filter)"
    endpoint = "item/stock-mutation-history"
    header_table = "item_mutations"
    id_column = "mutation_id"
    child_policy = ChildPolicy.NONE
    date_filter_type = "createDate"
    detail_from_listing = True
    open_ended_dates = True
    supports_warehouse_filter = True
    schema_sql = SCHEMA_ITEM_MUTATIONS_SQL

    def map_header(
        self, payload: Mapping[str, Any], scope_key: str, scope_name: str | None
    ) -> dict[str, Any]:
        return {
            "mutation_number": first_of(
                payload,
                "number",
                "mutationNumber",
                "transactionNumber",
                default=f"MUT-{payload.get('id')}",
            ),
            "branch_name": scope_name,
            "trans_date": remote_date_to_iso(
                first_of(payload, "transDate", "transactionDate")
            ),
            "mutation_type": first_of(payload, "mutationType", "transactionType"),
            "warehouse_id": first_of(payload, "warehouse.id", "warehouseId"),
            "warehouse_name": first_of(payload, "warehouse.name", "warehouseName"),
            "total_quantity": as_number(first_of(payload, "totalQuantity", "mutation")),
            "total_value": as_number(first_of(payload, "totalValue", "itemCost")),
        }
