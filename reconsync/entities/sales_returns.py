"""Sales returns: line items merged by sequence number.

Lines are upserted by ``(sales_return_id, branch_id, seq)``. A line that
disappears from the remote record keeps its last stored values.
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
    remote_date_to_iso,
)

SCHEMA_SALES_RETURNS_SQL = """
CREATE TABLE IF NOT EXISTS sales_returns (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sales_return_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    return_number TEXT,
    branch_name TEXT,
    trans_date TEXT,
    invoice_id TEXT,
    invoice_number TEXT,
    return_type TEXT,
    return_amount REAL DEFAULT 0,
    sub_total REAL DEFAULT 0,
    cash_discount REAL DEFAULT 0,
    description TEXT,
    approval_status TEXT,
    customer_id TEXT,
    salesman_name TEXT,
    currency_code TEXT,
    created_by TEXT,
    opt_lock INTEGER DEFAULT 0,
    raw_data TEXT,
    synced_at TEXT,
    UNIQUE (sales_return_id, branch_id)
);
CREATE INDEX IF NOT EXISTS idx_sales_returns_trans_date ON sales_returns (branch_id, trans_date);

CREATE TABLE IF NOT EXISTS sales_return_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sales_return_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    seq INTEGER NOT NULL,
    item_id TEXT,
    item_no TEXT,
    item_name TEXT,
    quantity REAL DEFAULT 0,
    unit_name TEXT,
    unit_price REAL DEFAULT 0,
    return_amount REAL DEFAULT 0,
    warehouse_id TEXT,
    warehouse_name TEXT,
    sales_invoice_detail_id TEXT,
    return_detail_status TEXT,
    UNIQUE (sales_return_id, branch_id, seq),
    FOREIGN KEY (sales_return_id, branch_id) REFERENCES sales_returns (sales_return_id, branch_id) ON DELETE CASCADE
);
"""


class SalesReturnSpec(EntitySpec):
    name = "sales-return"
    description = "Sales returns, lines merged by sequence"
    endpoint = "sales-return"
    header_table = "sales_returns"
    id_column = "sales_return_id"
    child_table = "sales_return_items"
    child_policy = ChildPolicy.MERGE_BY_SEQUENCE
    child_parent_columns = ("sales_return_id", "branch_id")
    child_key = ("sales_return_id", "branch_id", "seq")
    schema_sql = SCHEMA_SALES_RETURNS_SQL

    def map_header(
        self, payload: Mapping[str, Any], scope_key: str, scope_name: str | None
    ) -> dict[str, Any]:
        return {
            "return_number": payload.get("number"),
            "branch_name": scope_name,
            "trans_date": remote_date_to_iso(
                first_of(payload, "transDate", "transDateView")
            ),
            "invoice_id": first_of(payload, "invoiceId", "invoice.id"),
            "invoice_number": dig(payload, "invoice.number"),
            "return_type": payload.get("returnType"),
            "return_amount": as_number(payload.get("returnAmount")),
            "sub_total": as_number(payload.get("subTotal")),
            "cash_discount": as_number(payload.get("cashDiscount")),
            "description": payload.get("description"),
            "approval_status": payload.get("approvalStatus"),
            "customer_id": payload.get("customerId"),
            "salesman_name": dig(payload, "detailItem.0.salesmanList.0.name"),
            "currency_code": dig(payload, "currency.code"),
            "created_by": payload.get("createdBy"),
        }

    def map_children(self, payload: Mapping[str, Any]) -> list[dict[str, Any]]:
        rows = []
        for index, line in enumerate(detail_lines(payload, "detailItem"), start=1):
            # Remote line numbers win; position is the fallback.
            seq = int(as_number(line.get("seq"), default=index))
            rows.append(
                {
                    "seq": seq,
                    "item_id": first_of(line, "itemId", "item.id"),
                    "item_no": dig(line, "item.no"),
                    "item_name": line.get("detailName"),
                    "quantity": as_number(line.get("quantity")),
                    "unit_name": dig(line, "itemUnit.name"),
                    "unit_price": as_number(line.get("unitPrice")),
                    "return_amount": as_number(line.get("returnAmount")),
                    "warehouse_id": line.get("warehouseId"),
                    "warehouse_name": dig(line, "warehouse.name"),
                    "sales_invoice_detail_id": line.get("salesInvoiceDetailId"),
                    "return_detail_status": line.get("returnDetailStatusType"),
                }
            )
        return rows
