"""Purchase invoices: vendor bills with line items replaced wholesale."""

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

SCHEMA_PURCHASE_INVOICES_SQL = """
CREATE TABLE IF NOT EXISTS purchase_invoices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    invoice_number TEXT,
    branch_name TEXT,
    trans_date TEXT,
    due_date TEXT,
    vendor_id TEXT,
    vendor_name TEXT,
    bill_number TEXT,
    subtotal REAL DEFAULT 0,
    tax_amount REAL DEFAULT 0,
    total_amount REAL DEFAULT 0,
    prime_owing REAL DEFAULT 0,
    status_name TEXT,
    created_by TEXT,
    opt_lock INTEGER DEFAULT 0,
    raw_data TEXT,
    synced_at TEXT,
    UNIQUE (invoice_id, branch_id)
);
CREATE INDEX IF NOT EXISTS idx_purchase_invoices_trans_date ON purchase_invoices (branch_id, trans_date);

CREATE TABLE IF NOT EXISTS purchase_invoice_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    seq INTEGER NOT NULL,
    detail_id TEXT,
    item_id TEXT,
    item_no TEXT,
    item_name TEXT,
    quantity REAL DEFAULT 0,
    unit_name TEXT,
    unit_price REAL DEFAULT 0,
    discount REAL DEFAULT 0,
    amount REAL DEFAULT 0,
    warehouse_id TEXT,
    warehouse_name TEXT,
    item_category TEXT,
    FOREIGN KEY (invoice_id, branch_id) REFERENCES purchase_invoices (invoice_id, branch_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_purchase_invoice_items_invoice ON purchase_invoice_items (invoice_id, branch_id);
"""


class PurchaseInvoiceSpec(EntitySpec):
    name = "purchase-invoice"
    description = "Purchase invoices with line items"
    endpoint = "purchase-invoice"
    header_table = "purchase_invoices"
    id_column = "invoice_id"
    child_table = "purchase_invoice_items"
    child_policy = ChildPolicy.REPLACE_ALL
    child_parent_columns = ("invoice_id", "branch_id")
    schema_sql = SCHEMA_PURCHASE_INVOICES_SQL

    def map_header(
        self, payload: Mapping[str, Any], scope_key: str, scope_name: str | None
    ) -> dict[str, Any]:
        return {
            "invoice_number": payload.get("number"),
            "branch_name": scope_name,
            "trans_date": remote_date_to_iso(payload.get("transDate")),
            "due_date": remote_date_to_iso(payload.get("dueDate")),
            "vendor_id": dig(payload, "vendor.id"),
            "vendor_name": dig(payload, "vendor.name"),
            "bill_number": payload.get("billNumber"),
            "subtotal": as_number(payload.get("subTotal")),
            "tax_amount": as_number(payload.get("tax1Amount")),
            "total_amount": as_number(payload.get("totalAmount")),
            "prime_owing": as_number(payload.get("primeOwing")),
            "status_name": payload.get("statusName"),
            "created_by": payload.get("createdBy"),
        }

    def map_children(self, payload: Mapping[str, Any]) -> list[dict[str, Any]]:
        return [
            {
                "seq": seq,
                "detail_id": line.get("id"),
                "item_id": line.get("itemId"),
                "item_no": dig(line, "item.no", "N/A"),
                "item_name": first_of(line, "detailName", "item.name", default=""),
                "quantity": as_number(line.get("quantity")),
                "unit_name": dig(line, "itemUnit.name", ""),
                "unit_price": as_number(line.get("unitPrice")),
                "discount": as_number(line.get("itemCashDiscount")),
                "amount": as_number(
                    first_of(line, "purchaseAmountBase", "totalPrice", default=0)
                ),
                "warehouse_id": dig(line, "warehouse.id"),
                "warehouse_name": dig(line, "warehouse.name"),
                "item_category": dig(line, "item.itemCategoryId"),
            }
            for seq, line in enumerate(detail_lines(payload, "detailItem"), start=1)
        ]
