# -*- coding: utf-8 -*-
"""Invoice grouping and QuickBooks line-item formatting.

Work-log rows are grouped into one invoice per client, location and billing
week, numbered sequentially and rendered into the column syntax the
QuickBooks invoice import expects. The string rules below (item names,
frequency suffixes, spacing) are reproduced exactly from the legacy export;
the downstream import matches on them literally.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import DEFAULT_EXPORT_COLUMNS, ExportColumn, InvoiceLine, RateType

logger = logging.getLogger(__name__)

DEFAULT_START_NUMBER = 1001
DEFAULT_TERMS_DAYS = 30
DATE_FORMAT = "%m/%d/%Y"

EPA_CHARGES = "EPA Charges"

_TERMS_PATTERN = re.compile(r"net\s*(\d+)", re.IGNORECASE)
_ENDS_WITH_LETTER = re.compile(r"[a-zA-Z]$")


# ===================== Dates =====================

def billing_friday(work_date: date) -> date:
    """Friday of the Monday-Sunday week containing ``work_date``.

    Sunday belongs to the week that started six days earlier, so it maps back
    two days; every other day maps forward (or stays) to that week's Friday.
    """
    weekday = work_date.weekday()          # Monday=0 .. Sunday=6
    if weekday == 6:
        return work_date - timedelta(days=2)
    return work_date + timedelta(days=4 - weekday)


def parse_terms_days(terms: Optional[str]) -> int:
    """Days from a "Net N" terms string, 30 when it cannot be read."""
    match = _TERMS_PATTERN.search(terms or "")
    if not match:
        return DEFAULT_TERMS_DAYS
    return int(match.group(1))


def due_date(invoice_date: date, terms: Optional[str]) -> date:
    return invoice_date + timedelta(days=parse_terms_days(terms))


def format_date(value: Optional[date]) -> str:
    return value.strftime(DATE_FORMAT) if value else ""


def parse_start_number(value, default: int = DEFAULT_START_NUMBER) -> int:
    """First invoice number; anything non-numeric falls back to ``default``."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not re.fullmatch(r"[+-]?\d+", text):
        return default
    return int(text)


# ===================== QuickBooks item names =====================

def ends_with_letter(name: str) -> bool:
    return bool(_ENDS_WITH_LETTER.search(name or ""))


# (predicate(lowercased frequency, work type ends in a letter), suffix)
FrequencyRule = Tuple[Callable[[str, bool], bool], Callable[[bool], str]]

FREQUENCY_RULES: Tuple[FrequencyRule, ...] = (
    (lambda f, _: f in ("weekly", "1x/week"), lambda _: "1 X / Wk"),
    (lambda f, _: f == "2x/week", lambda letter: "2 X /Wk" if letter else "2 X / Wk"),
    (lambda f, _: f in ("monthly", "1x/month"), lambda _: "1 X / MO"),
    (lambda f, _: f == "2x/month", lambda letter: "2 X /MO" if letter else "2 X / MO"),
)


def format_frequency(frequency: Optional[str], work_type_name: str) -> str:
    """QuickBooks frequency suffix; unknown values pass through unchanged.

    The spacing of the twice-a-period suffixes depends on whether the
    (unpluralized) work type name ends in a letter or a digit.
    """
    if not frequency:
        return ""
    lowered = frequency.lower()
    letter = ends_with_letter(work_type_name)
    for matches, suffix in FREQUENCY_RULES:
        if matches(lowered, letter):
            return suffix(letter)
    return frequency


def pluralize_work_type(work_type_name: str, frequency: Optional[str]) -> str:
    """Append "s" for twice-a-period frequencies unless the name ends in a digit."""
    if frequency and "2x" in frequency.lower() and ends_with_letter(work_type_name):
        return work_type_name + "s"
    return work_type_name


@dataclass(frozen=True)
class ItemNameInput:
    prefix: str
    work_type_name: str
    rate_type: str
    frequency: Optional[str]


ItemNameRule = Tuple[Callable[[ItemNameInput], bool], Callable[[ItemNameInput], str]]

ITEM_NAME_RULES: Tuple[ItemNameRule, ...] = (
    (lambda i: i.work_type_name == EPA_CHARGES,
     lambda i: EPA_CHARGES),
    (lambda i: i.rate_type == RateType.HOURLY and i.work_type_name.lower() == "janitorial",
     lambda i: f"{i.prefix}-Jani"),
    (lambda i: i.rate_type == RateType.HOURLY,
     lambda i: f"{i.prefix}-Addi"),
)


def _per_unit_item_name(i: ItemNameInput) -> str:
    suffix = format_frequency(i.frequency, i.work_type_name)
    work_type = pluralize_work_type(i.work_type_name, i.frequency)
    return f"{i.prefix} {work_type} {suffix}".strip()


def build_item_name(
    parent_company: Optional[str],
    client_name: Optional[str],
    work_type_name: str,
    rate_type: str = RateType.PER_UNIT,
    frequency: Optional[str] = None,
) -> str:
    """QuickBooks product/service name for one line item."""
    item = ItemNameInput(
        prefix=parent_company or client_name or "",
        work_type_name=work_type_name or "",
        rate_type=rate_type,
        frequency=frequency,
    )
    for matches, build in ITEM_NAME_RULES:
        if matches(item):
            return build(item)
    return _per_unit_item_name(item)


# ===================== Amounts =====================

def format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def format_money(value: Optional[float]) -> str:
    return "" if value is None else f"{float(value):.2f}"


def line_total(quantity: float, rate: Optional[float]) -> str:
    """``quantity x rate`` to two decimals; empty when the rate is missing."""
    if rate is None:
        return ""
    return f"{float(quantity) * float(rate):.2f}"


# ===================== Grouping =====================

@dataclass
class InvoiceGroup:
    """Line items sharing one client, location and billing Friday."""

    invoice_number: str
    client_id: str
    location_id: str
    invoice_date: date
    lines: List[InvoiceLine] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str, date]:
        return (self.client_id, self.location_id, self.invoice_date)


@dataclass
class InvoiceExport:
    headers: List[str]
    rows: List[List[str]]
    invoice_count: int
    missing_rate_count: int
    total_quantity: float = 0.0
    total_amount: float = 0.0              # priced lines only

    @property
    def row_count(self) -> int:
        return len(self.rows)


class InvoiceGroupingEngine:
    """Groups invoice lines and renders them through an export column mapping."""

    def __init__(
        self,
        start_number=DEFAULT_START_NUMBER,
        legacy_order: bool = False,
        default_terms: str = "Net 30",
        default_class: str = "",
    ):
        self.start_number = parse_start_number(start_number)
        self.legacy_order = legacy_order
        self.default_terms = default_terms
        self.default_class = default_class

    def group(self, lines: Iterable[InvoiceLine]) -> List[InvoiceGroup]:
        """Group lines in first-seen order and assign sequential invoice numbers.

        Unless ``legacy_order`` is set, lines are first stably sorted by client
        name, location name and billing Friday so numbering does not depend on
        backend row order.
        """
        ordered = list(lines)
        if not self.legacy_order:
            ordered.sort(key=lambda l: (l.client_name, l.location_name, billing_friday(l.work_date)))

        groups: Dict[Tuple[str, str, date], InvoiceGroup] = {}
        next_number = self.start_number
        for line in ordered:
            friday = billing_friday(line.work_date)
            key = (line.client_id, line.location_id, friday)
            group = groups.get(key)
            if group is None:
                group = InvoiceGroup(
                    invoice_number=str(next_number),
                    client_id=line.client_id,
                    location_id=line.location_id,
                    invoice_date=friday,
                )
                groups[key] = group
                next_number += 1
            group.lines.append(line)
        return list(groups.values())

    def field_value(self, field_key: str, line: InvoiceLine, group: InvoiceGroup) -> str:
        terms = line.terms or self.default_terms
        if field_key == "invoice_number":
            return group.invoice_number
        if field_key == "invoice_date":
            return format_date(group.invoice_date)
        if field_key == "due_date":
            return format_date(due_date(group.invoice_date, terms))
        if field_key == "terms":
            return terms
        if field_key == "client_name":
            return line.client_name
        if field_key == "location_name":
            return line.location_name
        if field_key == "work_type_name":
            return line.work_type_name
        if field_key == "qb_item_name":
            return build_item_name(line.parent_company, line.client_name, line.work_type_name,
                                   line.rate_type, line.frequency)
        if field_key == "item_description":
            suffix = f" - {line.frequency}" if line.frequency else ""
            return f"{line.work_type_name}{suffix}"
        if field_key == "quantity":
            return format_number(line.quantity)
        if field_key == "rate":
            return format_money(line.rate)
        if field_key == "line_total":
            return line_total(line.quantity, line.rate)
        if field_key == "class":
            return line.client_class or self.default_class
        if field_key == "contact_email":
            return line.contact_email or ""
        if field_key == "taxable":
            return "Y" if line.is_taxable else "N"
        if field_key == "tax_jurisdiction":
            return line.tax_jurisdiction or ""
        if field_key == "tax_rate":
            return format_money(line.tax_rate)
        if field_key == "frequency":
            return line.frequency or ""
        if field_key == "work_date":
            return format_date(line.work_date)
        if field_key == "identifier":
            return line.identifier or ""
        raise KeyError(field_key)

    def render(
        self,
        lines: Iterable[InvoiceLine],
        columns: Sequence[ExportColumn] = DEFAULT_EXPORT_COLUMNS,
    ) -> InvoiceExport:
        """Header plus one row per line item, in invoice-group order."""
        groups = self.group(lines)
        rows: List[List[str]] = []
        missing_rates = 0
        total_quantity = 0.0
        total_amount = 0.0
        for group in groups:
            for position, line in enumerate(group.lines):
                total_quantity += float(line.quantity)
                if line.rate is None:
                    missing_rates += 1
                else:
                    total_amount += float(line.quantity) * float(line.rate)
                rows.append([
                    "" if column.first_row_only and position > 0
                    else self.field_value(column.field_key, line, group)
                    for column in columns
                ])
        if missing_rates:
            logger.warning("%d invoice line(s) have no rate and need review", missing_rates)
        return InvoiceExport(
            headers=[column.header_name for column in columns],
            rows=rows,
            invoice_count=len(groups),
            missing_rate_count=missing_rates,
            total_quantity=total_quantity,
            total_amount=round(total_amount, 2),
        )
