"""Purchase orders: line items merged by sequence number."""

from __future__ import annotations

from typing import Any, Mapping

from .base import (
    ChildPolicy,
    EntitySpec,
    as_number,
    detail_lines,
    dig,
    first_of,
    remote_date_to_iso,
)

SCHEMA_PURCHASE_ORDERS_SQL = """
CREATE TABLE IF NOT EXISTS purchase_orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    order_number TEXT,
    branch_name TEXT,
    trans_date TEXT,
    ship_date TEXT,
    vendor_id TEXT,
    vendor_no TEXT,
    vendor_name TEXT,
    description TEXT,
    currency_code TEXT,
    rate REAL,
    sub_total REAL DEFAULT 0,
    tax_amount REAL DEFAULT 0,
    total_amount REAL DEFAULT 0,
    approval_status TEXT,
    status_name TEXT,
    payment_term_id TEXT,
    created_by TEXT,
    opt_lock INTEGER DEFAULT 0,
    raw_data TEXT,
    synced_at TEXT,
    UNIQUE (order_id, branch_id)
);
CREATE INDEX IF NOT EXISTS idx_purchase_orders_trans_date ON purchase_orders (branch_id, trans_date);

CREATE TABLE IF NOT EXISTS purchase_order_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    seq INTEGER NOT NULL,
    item_id TEXT,
    item_no TEXT,
    item_name TEXT,
    quantity REAL DEFAULT 0,
    unit_name TEXT,
    unit_price REAL DEFAULT 0,
    total_price REAL DEFAULT 0,
    tax_rate REAL,
    warehouse_id TEXT,
    warehouse_name TEXT,
    notes TEXT,
    UNIQUE (order_id, branch_id, seq),
    FOREIGN KEY (order_id, branch_id) REFERENCES purchase_orders (order_id, branch_id) ON DELETE CASCADE
);
"""


class PurchaseOrderSpec(EntitySpec):
    name = "purchase-order"
    description = "Purchase orders, lines merged by sequence"
    endpoint = "purchase-order"
    header_table = "purchase_orders"
    id_column = "order_id"
    child_table = "purchase_order_items"
    child_policy = ChildPolicy.MERGE_BY_SEQUENCE
    child_parent_columns = ("order_id", "branch_id")
    child_key = ("order_id", "branch_id", "seq")
    schema_sql = SCHEMA_PURCHASE_ORDERS_SQL

    def map_header(
        self, payload: Mapping[str, Any], scope_key: str, scope_name: str | None
    ) -> dict[str, Any]:
        rate = payload.get("rate")
        return {
            "order_number": payload.get("number"),
            "branch_name": scope_name,
            "trans_date": remote_date_to_iso(payload.get("transDate")),
            "ship_date": remote_date_to_iso(payload.get("shipDate")),
            "vendor_id": dig(payload, "vendor.id"),
            "vendor_no": dig(payload, "vendor.vendorNo"),
            "vendor_name": dig(payload, "vendor.name"),
            "description": payload.get("description"),
            "currency_code": dig(payload, "currency.code"),
            "rate": None if rate in (None, "") else as_number(rate),
            "sub_total": as_number(payload.get("subTotal")),
            "tax_amount": as_number(payload.get("tax1Amount")),
            "total_amount": as_number(payload.get("totalAmount")),
            "approval_status": payload.get("approvalStatus"),
            "status_name": payload.get("status"),
            "payment_term_id": payload.get("paymentTermId"),
            "created_by": payload.get("createdBy"),
        }

    def map_children(self, payload: Mapping[str, Any]) -> list[dict[str, Any]]:
        rows = []
        for index, line in enumerate(detail_lines(payload, "detailItem"), start=1):
            tax_rate = dig(line, "tax1.rate")
            rows.append(
                {
                    "seq": int(as_number(line.get("seq"), default=index)),
                    "item_id": first_of(line, "itemId", "item.id"),
                    "item_no": dig(line, "item.no"),
                    "item_name": first_of(line, "detailName", "item.name"),
                    "quantity": as_number(line.get("quantity")),
                    "unit_name": dig(line, "itemUnit.name"),
                    "unit_price": as_number(line.get("unitPrice")),
                    "total_price": as_number(line.get("totalPrice")),
                    "tax_rate": None if tax_rate is None else as_number(tax_rate),
                    "warehouse_id": dig(line, "defaultWarehousePurchaseInvoice.id"),
                    "warehouse_name": dig(line, "defaultWarehousePurchaseInvoice.name"),
                    "notes": line.get("detailNotes"),
                }
            )
        return rows
