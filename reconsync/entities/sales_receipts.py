"""Sales receipts: paid-invoice lines appended, never rewritten."""

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

SCHEMA_SALES_RECEIPTS_SQL = """
CREATE TABLE IF NOT EXISTS sales_receipts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    receipt_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    receipt_number TEXT,
    branch_name TEXT,
    journal_id TEXT,
    trans_date TEXT,
    cheque_date TEXT,
    customer_id TEXT,
    customer_name TEXT,
    bank_id TEXT,
    bank_name TEXT,
    total_payment REAL DEFAULT 0,
    over_pay REAL DEFAULT 0,
    use_credit INTEGER DEFAULT 0,
    payment_method TEXT,
    cheque_no TEXT,
    description TEXT,
    created_by TEXT,
    opt_lock INTEGER DEFAULT 0,
    raw_data TEXT,
    synced_at TEXT,
    UNIQUE (receipt_id, branch_id)
);
CREATE INDEX IF NOT EXISTS idx_sales_receipts_trans_date ON sales_receipts (branch_id, trans_date);

CREATE TABLE IF NOT EXISTS sales_receipt_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    receipt_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    invoice_id TEXT NOT NULL,
    invoice_number TEXT,
    invoice_date TEXT,
    invoice_total REAL DEFAULT 0,
    invoice_remaining REAL DEFAULT 0,
    payment_amount REAL DEFAULT 0,
    discount_amount REAL DEFAULT 0,
    paid_amount REAL DEFAULT 0,
    status TEXT,
    UNIQUE (receipt_id, branch_id, invoice_id),
    FOREIGN KEY (receipt_id, branch_id) REFERENCES sales_receipts (receipt_id, branch_id) ON DELETE CASCADE
);
"""


class SalesReceiptSpec(EntitySpec):
    name = "sales-receipt"
    description = "Sales receipts, paid invoices appended"
    endpoint = "sales-receipt"
    header_table = "sales_receipts"
    id_column = "receipt_id"
    child_table = "sales_receipt_items"
    child_policy = ChildPolicy.APPEND_ONLY
    child_parent_columns = ("receipt_id", "branch_id")
    child_key = ("receipt_id", "branch_id", "invoice_id")
    schema_sql = SCHEMA_SALES_RECEIPTS_SQL

    def map_header(
        self, payload: Mapping[str, Any], scope_key: str, scope_name: str | None
    ) -> dict[str, Any]:
        return {
            "receipt_number": payload.get("number"),
            "branch_name": scope_name,
            "journal_id": payload.get("journalId"),
            "trans_date": remote_date_to_iso(payload.get("transDate")),
            "cheque_date": remote_date_to_iso(payload.get("chequeDate")),
            "customer_id": first_of(payload, "customerId", "customer.customerNo"),
            "customer_name": dig(payload, "customer.name"),
            "bank_id": first_of(payload, "bankId", "bank.id"),
            "bank_name": dig(payload, "bank.name"),
            "total_payment": as_number(payload.get("totalPayment")),
            "over_pay": as_number(payload.get("overPay")),
            "use_credit": 1 if payload.get("useCredit") else 0,
            "payment_method": payload.get("paymentMethod"),
            "cheque_no": payload.get("chequeNo"),
            "description": payload.get("description"),
            "created_by": payload.get("createdBy"),
        }

    def map_children(self, payload: Mapping[str, Any]) -> list[dict[str, Any]]:
        rows = []
        for line in detail_lines(payload, "detailInvoice"):
            invoice_id = first_of(line, "invoiceId", "invoice.id")
            rows.append(
                {
                    "invoice_id": None if invoice_id is None else str(invoice_id),
                    "invoice_number": dig(line, "invoice.number"),
                    "invoice_date": remote_date_to_iso(
                        first_of(line, "invoice.transDate", "invoice.transDateView")
                    ),
                    "invoice_total": as_number(dig(line, "invoice.totalAmount")),
                    "invoice_remaining": as_number(dig(line, "invoice.owingForPayment")),
                    "payment_amount": as_number(line.get("paymentAmount")),
                    "discount_amount": as_number(line.get("discountAmount")),
                    "paid_amount": as_number(line.get("invoicePayment")),
                    "status": dig(line, "invoice.status"),
                }
            )
        return rows
