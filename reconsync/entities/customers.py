"""Customers: master data with no child rows and no date filter."""

from __future__ import annotations

from typing import Any, Mapping

from .base import ChildPolicy, EntitySpec, first_of, remote_date_to_iso

SCHEMA_CUSTOMERS_SQL = """
CREATE TABLE IF NOT EXISTS customers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id TEXT NOT NULL,
    branch_id TEXT NOT NULL,
    customer_no TEXT,
    name TEXT,
    branch_name TEXT,
    category_name TEXT,
    discount_cat_id TEXT,
    salesman_id TEXT,
    salesman_name TEXT,
    phone TEXT,
    created_date TEXT,
    updated_date TEXT,
    suspended INTEGER DEFAULT 0,
    opt_lock INTEGER DEFAULT 0,
    raw_data TEXT,
    synced_at TEXT,
    UNIQUE (customer_id, branch_id)
);
CREATE INDEX IF NOT EXISTS idx_customers_customer_no ON customers (branch_id, customer_no);
"""


class CustomerSpec(EntitySpec):
    name = "customer"
    description = "Customer master data"
    endpoint = "customer"
    header_table = "customers"
    id_column = "customer_id"
    child_policy = ChildPolicy.NONE
    date_filter_type = None
    date_column = None
    schema_sql = SCHEMA_CUSTOMERS_SQL

    def map_header(
        self, payload: Mapping[str, Any], scope_key: str, scope_name: str | None
    ) -> dict[str, Any]:
        return {
            "customer_no": first_of(payload, "customerNo", "custNo"),
            "name": first_of(payload, "name", "customerName"),
            "branch_name": scope_name,
            # Uncategorised customers fall under the remote's default "Umum" group.
            "category_name": first_of(
                payload, "customerCategory.name", "category.name", default="Umum"
            ),
            "discount_cat_id": first_of(payload, "discountCategoryId", "priceCategoryId"),
            "salesman_id": first_of(
                payload, "salesman.id", "salesmanList.0.id", "defaultSalesmanId"
            ),
            "salesman_name": first_of(payload, "salesman.name", "salesmanList.0.name"),
            "phone": first_of(payload, "phone", "mobilePhone"),
            "created_date": remote_date_to_iso(payload.get("createDate")),
            "updated_date": remote_date_to_iso(payload.get("lastUpdate")),
            "suspended": int(bool(payload.get("suspended"))),
        }
