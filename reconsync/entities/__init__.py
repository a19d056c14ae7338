"""Registry of the business entities the engine knows how to sync."""

from __future__ import annotations

from .base import ChildPolicy, EntitySpec, MappedRecord, MappingError
from .customers import CustomerSpec
from .item_mutations import ItemMutationSpec
from .items import ItemSpec
from .purchase_invoices import PurchaseInvoiceSpec
from .purchase_orders import PurchaseOrderSpec
from .sales_invoices import SalesInvoiceSpec
from .sales_orders import SalesOrderSpec
from .sales_receipts import SalesReceiptSpec
from .sales_returns import SalesReturnSpec

_REGISTRY: dict[str, EntitySpec] = {
    spec.name: spec
    for spec in (
        SalesOrderSpec(),
        SalesInvoiceSpec(),
        SalesReturnSpec(),
        SalesReceiptSpec(),
        ItemMutationSpec(),
        PurchaseOrderSpec(),
        PurchaseInvoiceSpec(),
        CustomerSpec(),
        ItemSpec(),
    )
}


def get_entity(name: str) -> EntitySpec:
    """Return the entity registered under ``name``.

    Raises:
        KeyError: If no entity with that name exists.
    """
    return _REGISTRY[name]


def available_entities() -> list[EntitySpec]:
    return list(_REGISTRY.values())


__all__ = [
    "ChildPolicy",
    "CustomerSpec",
    "EntitySpec",
    "ItemMutationSpec",
    "ItemSpec",
    "MappedRecord",
    "MappingError",
    "PurchaseInvoiceSpec",
    "PurchaseOrderSpec",
    "SalesInvoiceSpec",
    "SalesOrderSpec",
    "SalesReceiptSpec",
    "SalesReturnSpec",
    "available_entities",
    "get_entity",
]
