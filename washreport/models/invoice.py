"""Invoice line items and export column mappings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple


class RateType:
    HOURLY = "hourly"
    PER_UNIT = "per_unit"


@dataclass(frozen=True)
class InvoiceLine:
    """One billable work-log row with its client and rate data resolved."""

    client_id: str
    client_name: str
    location_id: str
    location_name: str
    work_type_name: str
    work_date: date
    quantity: float
    rate: Optional[float]                       # None means "needs rate review"
    work_type_id: Optional[str] = None
    rate_type: str = RateType.PER_UNIT
    frequency: Optional[str] = None
    parent_company: Optional[str] = None
    terms: Optional[str] = None
    client_class: Optional[str] = None
    contact_email: Optional[str] = None
    is_taxable: bool = False
    tax_jurisdiction: Optional[str] = None
    tax_rate: Optional[float] = None
    identifier: Optional[str] = None


@dataclass(frozen=True)
class InvoiceField:
    """An entry of the fixed invoice field vocabulary."""

    key: str
    label: str
    description: str
    default_header: str
    suggest_first_row_only: bool = False


INVOICE_FIELDS: Tuple[InvoiceField, ...] = (
    InvoiceField("invoice_number", "Invoice Number", "Auto-generated invoice ID", "*InvoiceNo", True),
    InvoiceField("client_name", "Client Name", "Customer/Client name", "*Customer", True),
    InvoiceField("location_name", "Location Name", "Work location", "Location"),
    InvoiceField("invoice_date", "Invoice Date", "Date of invoice", "*InvoiceDate", True),
    InvoiceField("due_date", "Due Date", "Payment due date", "*DueDate", True),
    InvoiceField("terms", "Terms", "Payment terms (e.g., Net 30)", "Terms", True),
    InvoiceField("qb_item_name", "QuickBooks Item", "Item name in QuickBooks syntax", "Item(Product/Service)"),
    InvoiceField("work_type_name", "Work Type", "Type of service performed", "WorkType"),
    InvoiceField("item_description", "Item Description", "Description of line item", "ItemDescription"),
    InvoiceField("quantity", "Quantity", "Quantity for line", "ItemQuantity"),
    InvoiceField("rate", "Rate", "Price per unit", "ItemRate"),
    InvoiceField("line_total", "Line Total", "Quantity x Rate", "*ItemAmount"),
    InvoiceField("class", "Class", "Accounting class/category", "Class", True),
    InvoiceField("contact_email", "Contact Email", "Client email address", "Email", True),
    InvoiceField("taxable", "Taxable", "Y/N for tax status", "Taxable"),
    InvoiceField("tax_jurisdiction", "Tax Rate/Jurisdiction", "Tax jurisdiction code", "TaxRate"),
    InvoiceField("tax_rate", "Tax Rate (%)", "Client tax rate", "TaxPercent"),
    InvoiceField("frequency", "Frequency", "Service frequency", "Frequency"),
    InvoiceField("work_date", "Work Date", "Date the work was performed", "ServiceDate"),
    InvoiceField("identifier", "Vehicle Number", "Vehicle or asset tag", "VehicleNo"),
)

INVOICE_FIELD_KEYS = frozenset(f.key for f in INVOICE_FIELDS)


@dataclass(frozen=True)
class ExportColumn:
    """Binds an output header to an invoice field."""

    id: str
    field_key: str
    header_name: str
    first_row_only: bool = False

    def __post_init__(self):
        if self.field_key not in INVOICE_FIELD_KEYS:
            raise ValueError(f"unknown invoice field {self.field_key!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportColumn":
        return cls(
            id=str(data.get("id") or data["fieldKey"]),
            field_key=data["fieldKey"],
            header_name=data.get("headerName") or data["fieldKey"],
            first_row_only=bool(data.get("firstRowOnly", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "fieldKey": self.field_key,
            "headerName": self.header_name,
            "firstRowOnly": self.first_row_only,
        }


# QuickBooks line-item import layout
DEFAULT_EXPORT_COLUMNS: Tuple[ExportColumn, ...] = (
    ExportColumn("qb-1", "invoice_number", "*InvoiceNo", True),
    ExportColumn("qb-2", "client_name", "*Customer", True),
    ExportColumn("qb-3", "invoice_date", "*InvoiceDate", True),
    ExportColumn("qb-4", "due_date", "*DueDate", True),
    ExportColumn("qb-5", "terms", "Terms", True),
    ExportColumn("qb-6", "qb_item_name", "Item(Product/Service)"),
    ExportColumn("qb-7", "item_description", "ItemDescription"),
    ExportColumn("qb-8", "quantity", "ItemQuantity"),
    ExportColumn("qb-9", "rate", "ItemRate"),
    ExportColumn("qb-10", "line_total", "*ItemAmount"),
    ExportColumn("qb-11", "class", "Class", True),
    ExportColumn("qb-12", "contact_email", "Email", True),
    ExportColumn("qb-13", "taxable", "Taxable"),
    ExportColumn("qb-14", "tax_jurisdiction", "TaxRate"),
)

PREVIEW_EXPORT_COLUMNS: Tuple[ExportColumn, ...] = (
    ExportColumn("p-1", "client_name", "Client"),
    ExportColumn("p-2", "location_name", "Location"),
    ExportColumn("p-3", "qb_item_name", "Item"),
    ExportColumn("p-4", "frequency", "Frequency"),
    ExportColumn("p-5", "quantity", "Quantity"),
    ExportColumn("p-6", "rate", "Rate"),
    ExportColumn("p-7", "line_total", "Line Total"),
)

INVOICE_DATE_MODES = ("export_date", "end_date")


@dataclass
class ExportLayout:
    """A saved QuickBooks export setup: column mapping plus client defaults.

    ``invoice_date_mode`` is stored with the layout for the export screen;
    invoice dates themselves are always the billing Friday.
    """

    columns: List[ExportColumn] = field(default_factory=lambda: list(DEFAULT_EXPORT_COLUMNS))
    default_terms: Optional[str] = None
    default_class: Optional[str] = None
    invoice_date_mode: Optional[str] = None

    def __post_init__(self):
        self.columns = list(self.columns)
        if not self.columns:
            raise ValueError("Please select at least one column")
        if self.invoice_date_mode is not None and self.invoice_date_mode not in INVOICE_DATE_MODES:
            raise ValueError(f"unknown invoice date mode {self.invoice_date_mode!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportLayout":
        """Build a layout from its persisted (camelCase) form."""
        return cls(
            columns=[ExportColumn.from_dict(c) for c in data.get("columns") or []],
            default_terms=data.get("defaultTerms") or None,
            default_class=data.get("defaultClass"),
            invoice_date_mode=data.get("invoiceDateMode") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"columns": [c.to_dict() for c in self.columns]}
        if self.default_terms is not None:
            data["defaultTerms"] = self.default_terms
        if self.default_class is not None:
            data["defaultClass"] = self.default_class
        if self.invoice_date_mode is not None:
            data["invoiceDateMode"] = self.invoice_date_mode
        return data
