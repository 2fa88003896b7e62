from typing import List, Optional

from schemas import Invoice

SEARCH_FIELDS = ("invoiceNo", "clientName", "paymentStatus", "invoiceDate", "dueDate")


def _field_text(invoice: Invoice, field: str) -> str:
    value = getattr(invoice, field)
    return str(getattr(value, "value", value) or "").lower()


def upsert(collection: List[Invoice], invoice: Invoice) -> List[Invoice]:
    """Newest first; any record with the same invoiceNo is replaced."""
    rest = [record for record in collection if record.invoiceNo != invoice.invoiceNo]
    return [invoice] + rest


def delete(collection: List[Invoice], invoice_no: str) -> List[Invoice]:
    return [record for record in collection if record.invoiceNo != invoice_no]


def search(collection: List[Invoice], query: Optional[str]) -> List[Invoice]:
    if not (query or "").strip():
        return collection
    needle = query.lower()
    return [
        record for record in collection
        if any(needle in _field_text(record, field) for field in SEARCH_FIELDS)
    ]


def find_by_key(collection: List[Invoice], invoice_no: str) -> Optional[Invoice]:
    for record in collection:
        if record.invoiceNo == invoice_no:
            # edits to the draft must not leak into the stored record
            return record.model_copy(deep=True)
    return None
