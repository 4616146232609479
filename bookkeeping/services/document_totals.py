"""
Document totals calculator shared by invoices, bills, credit notes and
recurring invoice templates.

Pure functions over Decimal values: no I/O, no state. Every computed money
component is rounded to paise (ROUND_HALF_UP) before it is summed, so a
document's totals always add up exactly and can be posted as a balanced entry.

Per item:
    amount          = quantity x rate
    <component>     = amount x <component rate> / 100   (CGST, SGST, IGST, Cess)
    total           = amount + sum(components)

Per document:
    subtotal        = sum(item amounts)
    discount        = subtotal x value / 100 (percentage) or value (fixed)
    taxable         = subtotal - discount
    total tax       = sum(component totals)
    grand total     = taxable + total tax - TDS (bills only)
    balance due     = grand total - amount paid
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional, Tuple

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PAISE = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Coerce int/str/float/None to Decimal without binary float artefacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(PAISE, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class DocumentItem:
    """One line of a document as entered."""
    quantity: Decimal
    rate: Decimal
    cgst_rate: Decimal = ZERO
    sgst_rate: Decimal = ZERO
    igst_rate: Decimal = ZERO
    cess_rate: Decimal = ZERO
    description: str = ""

    @classmethod
    def from_object(cls, obj: Any) -> "DocumentItem":
        """Build from anything exposing the item attributes (ORM row, schema)."""
        return cls(
            quantity=to_decimal(obj.quantity),
            rate=to_decimal(obj.rate),
            cgst_rate=to_decimal(getattr(obj, "cgst_rate", None)),
            sgst_rate=to_decimal(getattr(obj, "sgst_rate", None)),
            igst_rate=to_decimal(getattr(obj, "igst_rate", None)),
            cess_rate=to_decimal(getattr(obj, "cess_rate", None)),
            description=getattr(obj, "description", "") or "",
        )


@dataclass(frozen=True)
class ItemTotals:
    amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal

    @property
    def tax_amount(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount + self.cess_amount

    @property
    def total_amount(self) -> Decimal:
        return self.amount + self.tax_amount


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    total_tax: Decimal
    tds_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    items: Tuple[ItemTotals, ...] = field(default_factory=tuple)


def compute_item(item: DocumentItem) -> ItemTotals:
    amount = round_money(to_decimal(item.quantity) * to_decimal(item.rate))

    def component(rate: Decimal) -> Decimal:
        return round_money(amount * to_decimal(rate) / HUNDRED)

    return ItemTotals(
        amount=amount,
        cgst_amount=component(item.cgst_rate),
        sgst_amount=component(item.sgst_rate),
        igst_amount=component(item.igst_rate),
        cess_amount=component(item.cess_rate),
    )


def compute_discount(subtotal: Decimal, discount_type: Optional[str], discount_value: Any) -> Decimal:
    value = to_decimal(discount_value)
    if discount_type and str(getattr(discount_type, "value", discount_type)).upper() == "PERCENTAGE":
        return round_money(subtotal * value / HUNDRED)
    return round_money(value)


def compute(
    items: Iterable[DocumentItem],
    discount_type: Optional[str] = None,
    discount_value: Any = ZERO,
    tds_applicable: bool = False,
    tds_rate: Any = ZERO,
    amount_paid: Any = ZERO,
) -> DocumentTotals:
    """
    Compute all totals for a document.

    Args:
        items: Document lines
        discount_type: "PERCENTAGE" for a percent of subtotal, anything else is a fixed amount
        discount_value: Percent or fixed amount
        tds_applicable: Bills only - withhold TDS on the taxable amount
        tds_rate: TDS percent
        amount_paid: Payments already applied

    Returns:
        DocumentTotals with per-item breakdown in input order
    """
    item_totals = tuple(compute_item(item) for item in items)

    subtotal = sum((t.amount for t in item_totals), ZERO)
    cgst = sum((t.cgst_amount for t in item_totals), ZERO)
    sgst = sum((t.sgst_amount for t in item_totals), ZERO)
    igst = sum((t.igst_amount for t in item_totals), ZERO)
    cess = sum((t.cess_amount for t in item_totals), ZERO)

    discount = compute_discount(subtotal, discount_type, discount_value)
    taxable = subtotal - discount
    total_tax = cgst + sgst + igst + cess

    tds = ZERO
    rate = to_decimal(tds_rate)
    if tds_applicable and rate > ZERO:
        tds = round_money(taxable * rate / HUNDRED)

    total = taxable + total_tax - tds
    paid = round_money(to_decimal(amount_paid))

    return DocumentTotals(
        subtotal=subtotal,
        discount_amount=discount,
        taxable_amount=taxable,
        cgst_amount=cgst,
        sgst_amount=sgst,
        igst_amount=igst,
        cess_amount=cess,
        total_tax=total_tax,
        tds_amount=tds,
        total_amount=total,
        amount_paid=paid,
        balance_due=total - paid,
        items=item_totals,
    )
