"""Sales invoices: header plus line items, children replaced wholesale."""

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

SCHEMA_SALES_INVOICES_SQL = """
CREATE TABLE IF NOT EXISTS sales_invoices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    invoice_number TEXT,
    branch_name TEXT,
    trans_date TEXT,
    customer_id TEXT,
    customer_name TEXT,
    salesman_id TEXT,
    salesman_name TEXT,
    subtotal REAL DEFAULT 0,
    discount REAL DEFAULT 0,
    tax REAL DEFAULT 0,
    total REAL DEFAULT 0,
    status TEXT,
    opt_lock INTEGER DEFAULT 0,
    raw_data TEXT,
    synced_at TEXT,
    UNIQUE (invoice_id, branch_id)
);
CREATE INDEX IF NOT EXISTS idx_sales_invoices_trans_date ON sales_invoices (branch_id, trans_date);

CREATE TABLE IF NOT EXISTS sales_invoice_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    seq INTEGER NOT NULL,
    item_no TEXT,
    item_name TEXT,
    quantity REAL DEFAULT 0,
    unit_name TEXT,
    unit_price REAL DEFAULT 0,
    discount REAL DEFAULT 0,
    amount REAL DEFAULT 0,
    warehouse_name TEXT,
    salesman_name TEXT,
    item_category TEXT,
    FOREIGN KEY (invoice_id, branch_id) REFERENCES sales_invoices (invoice_id, branch_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_sales_invoice_items_invoice ON sales_invoice_items (invoice_id, branch_id);
"""


class SalesInvoiceSpec(EntitySpec):
    name = "sales-invoice"
    description = "Sales invoices with line items"
    endpoint = "sales-invoice"
    header_table = "sales_invoices"
    id_column = "invoice_id"
    child_table = "sales_invoice_items"
    child_policy = ChildPolicy.REPLACE_ALL
    child_parent_columns = ("invoice_id", "branch_id")
    schema_sql = SCHEMA_SALES_INVOICES_SQL

    def map_header(
        self, payload: Mapping[str, Any], scope_key: str, scope_name: str | None
    ) -> dict[str, Any]:
        return {
            "invoice_number": payload.get("number"),
            "branch_name": scope_name,
            "trans_date": remote_date_to_iso(payload.get("transDate")),
            "customer_id": dig(payload, "customer.customerNo"),
            "customer_name": dig(payload, "customer.name"),
            "salesman_id": payload.get("masterSalesmanId"),
            "salesman_name": payload.get("masterSalesmanName"),
            "subtotal": as_number(payload.get("subTotal")),
            "discount": as_number(payload.get("cashDiscount")),
            "tax": as_number(payload.get("tax1Amount")),
            "total": as_number(payload.get("totalAmount")),
            "status": payload.get("status"),
        }

    def map_children(self, payload: Mapping[str, Any]) -> list[dict[str, Any]]:
        return [
            {
                "seq": seq,
                "item_no": dig(line, "item.no", "N/A"),
                "item_name": dig(line, "item.name", ""),
                "quantity": as_number(line.get("quantity")),
                "unit_name": dig(line, "itemUnit.name", ""),
                "unit_price": as_number(line.get("unitPrice")),
                "discount": as_number(line.get("itemCashDiscount")),
                "amount": as_number(
                    first_of(line, "salesAmountBase", "totalPrice", default=0)
                ),
                "warehouse_name": dig(line, "warehouse.name"),
                "salesman_name": first_of(line, "salesmanName", "salesmanList.0.name"),
                "item_category": dig(line, "item.itemCategoryId"),
            }
            for seq, line in enumerate(detail_lines(payload, "detailItem"), start=1)
        ]
