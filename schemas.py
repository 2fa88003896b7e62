from enum import Enum
from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional, List

from calc import InvoiceTotals, to_number

ISSUER_FIELDS = (
    "logoUrl",
    "companyName",
    "companyEmail",
    "companyPhone",
    "companyAddress",
    "companyTin",
)


class PaymentStatus(str, Enum):
    UNPAID = "Unpaid"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"

    @classmethod
    def _missing_(cls, value):
        # accept "PartiallyPaid", "partially paid", ...
        key = str(value).replace(" ", "").replace("_", "").lower()
        for member in cls:
            if member.value.replace(" ", "").lower() == key:
                return member
        return None


class LineItem(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    description: str = ""
    quantity: float = 1
    rate: float = 0

    @field_validator("quantity", "rate", mode="before")
    @classmethod
    def non_negative_number(cls, value):
        return max(to_number(value), 0)


class CompanyProfile(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    logoUrl: str = ""
    companyName: str = ""
    companyEmail: str = ""
    companyPhone: str = ""
    companyAddress: str = ""
    companyTin: str = ""


class Invoice(CompanyProfile):
    clientName: str = ""
    clientPhone: str = ""
    clientEmail: str = ""
    clientAddress: str = ""

    items: List[LineItem] = []

    bankDetails: str = ""
    additionalDetails: str = ""
    terms: str = ""

    taxRate: float = 0
    discount: float = 0
    shipping: float = 0

    paymentStatus: PaymentStatus = PaymentStatus.UNPAID
    currency: str = "USD"

    invoiceNo: str = ""
    invoiceDate: str = ""
    dueDate: str = ""

    @field_validator("taxRate", "discount", "shipping", mode="before")
    @classmethod
    def coerce_amount(cls, value):
        return to_number(value)

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, value):
        return str(value or "").strip().upper()


# -------------------------------
# Request / response bodies
# -------------------------------

class DraftUpdate(BaseModel):
    """Partial edit of the open draft; unset fields are left alone."""
    logoUrl: Optional[str] = None
    companyName: Optional[str] = None
    companyEmail: Optional[str] = None
    companyPhone: Optional[str] = None
    companyAddress: Optional[str] = None
    companyTin: Optional[str] = None

    clientName: Optional[str] = None
    clientPhone: Optional[str] = None
    clientEmail: Optional[str] = None
    clientAddress: Optional[str] = None

    items: Optional[List[LineItem]] = None

    bankDetails: Optional[str] = None
    additionalDetails: Optional[str] = None
    terms: Optional[str] = None

    taxRate: Optional[str | float] = None
    discount: Optional[str | float] = None
    shipping: Optional[str | float] = None

    paymentStatus: Optional[PaymentStatus] = None
    invoiceNo: Optional[str] = None
    invoiceDate: Optional[str] = None
    dueDate: Optional[str] = None


class ItemUpdate(BaseModel):
    description: Optional[str] = None
    quantity: Optional[str | float] = None
    rate: Optional[str | float] = None


class CurrencyUpdate(BaseModel):
    currency: str


class FormattedTotals(BaseModel):
    subtotal: str
    vat: str
    total: str


class DraftView(BaseModel):
    invoice: Invoice
    totals: InvoiceTotals
    formatted: FormattedTotals


class InvoiceSummary(BaseModel):
    invoiceNo: str
    clientName: str
    invoiceDate: str
    dueDate: str
    paymentStatus: PaymentStatus
    currency: str
    total: float
    totalFormatted: str


class StateView(BaseModel):
    profile: CompanyProfile
    currency: str
    draft: DraftView
