"""GST invoices: tax split, totals, checks and a printable rendering.

Supplies within the seller's state carry CGST and SGST at half the rate
each; supplies to another state carry IGST at the full rate.
"""
from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
DEFAULT_GST_RATE = 5.0

_ONES = (
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine", "Ten",
    "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen",
)
_TENS = ("", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety")


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class Party:
    name: str
    address: str = ""
    state: str = ""
    gstin: str = ""


@dataclass
class InvoiceLine:
    description: str
    quantity: int
    unit_price: float
    gst_rate: float = DEFAULT_GST_RATE
    hsn: str = ""
    tax_inclusive: bool = True


@dataclass
class GstInvoice:
    number: str
    invoice_date: date
    seller: Party
    buyer: Party
    lines: List[InvoiceLine] = field(default_factory=list)
    place_of_supply: Optional[str] = None
    order_number: Optional[str] = None


@dataclass
class InvoiceTotals:
    intra_state: bool
    lines: List[Dict[str, Any]]
    taxable: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    grand_total: Decimal

    @property
    def tax(self) -> Decimal:
        return self.cgst + self.sgst + self.igst

    @property
    def amount_in_words(self) -> str:
        return amount_in_words(self.grand_total)


def financial_year(day: date) -> str:
    """Indian financial year label for ``day``, e.g. ``2024-25``."""

    start = day.year if day.month >= 4 else day.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def invoice_number(prefix: str, sequence: int, day: date) -> str:
    return f"{prefix}/{financial_year(day)}/{sequence:04d}"


def is_intra_state(seller: Party, buyer: Party, place_of_supply: Optional[str] = None) -> bool:
    """Compare GSTIN state codes when both exist, otherwise state names."""

    if seller.gstin[:2].isdigit() and buyer.gstin[:2].isdigit() and not place_of_supply:
        return seller.gstin[:2] == buyer.gstin[:2]
    supply = (place_of_supply or buyer.state or "").strip().lower()
    return bool(supply) and supply == seller.state.strip().lower()


def compute_invoice(invoice: GstInvoice) -> InvoiceTotals:
    """Split each line into taxable value and tax, then total the invoice."""

    if not invoice.lines:
        raise ValueError("An invoice needs at least one line")

    intra = is_intra_state(invoice.seller, invoice.buyer, invoice.place_of_supply)
    rows: List[Dict[str, Any]] = []
    for line in invoice.lines:
        if line.quantity <= 0:
            raise ValueError(f"Quantity must be positive for {line.description!r}")
        rate = Decimal(str(line.gst_rate))
        gross = _money(Decimal(str(line.unit_price)) * line.quantity)
        if line.tax_inclusive:
            taxable = _money(gross * 100 / (100 + rate))
        else:
            taxable = gross
        tax = _money(taxable * rate / 100)
        if intra:
            cgst = _money(tax / 2)
            sgst = tax - cgst
            igst = Decimal("0.00")
        else:
            cgst = sgst = Decimal("0.00")
            igst = tax
        if line.tax_inclusive:
            # Keep the printed line total equal to the price the customer paid.
            taxable = gross - tax
        rows.append(
            {
                "description": line.description,
                "hsn": line.hsn,
                "quantity": line.quantity,
                "rate": float(rate),
                "taxable": taxable,
                "cgst": cgst,
                "sgst": sgst,
                "igst": igst,
                "total": taxable + cgst + sgst + igst,
            }
        )

    totals = InvoiceTotals(
        intra_state=intra,
        lines=rows,
        taxable=sum((r["taxable"] for r in rows), Decimal("0.00")),
        cgst=sum((r["cgst"] for r in rows), Decimal("0.00")),
        sgst=sum((r["sgst"] for r in rows), Decimal("0.00")),
        igst=sum((r["igst"] for r in rows), Decimal("0.00")),
        grand_total=sum((r["total"] for r in rows), Decimal("0.00")),
    )
    logger.debug("Invoice %s totals %s (intra_state=%s)", invoice.number, totals.grand_total, intra)
    return totals


def validate_invoice(invoice: GstInvoice, totals: InvoiceTotals) -> List[str]:
    """Return human-readable problems; an empty list means the invoice can be issued."""

    issues: List[str] = []
    if not invoice.seller.gstin:
        issues.append("Seller GSTIN missing")
    if not invoice.buyer.name:
        issues.append("Buyer name missing")
    if totals.taxable + totals.tax != totals.grand_total:
        issues.append("Taxable value plus tax does not match the grand total")
    if totals.intra_state and totals.igst:
        issues.append("Intra-state invoice carries IGST")
    if not totals.intra_state and (totals.cgst or totals.sgst):
        issues.append("Inter-state invoice carries CGST/SGST")
    if issues:
        logger.warning("Invoice %s flagged: %s", invoice.number, "; ".join(issues))
    return issues


def _two_digits(n: int) -> str:
    if n < 20:
        return _ONES[n]
    return " ".join(part for part in (_TENS[n // 10], _ONES[n % 10]) if part)


def _three_digits(n: int) -> str:
    hundreds, rest = divmod(n, 100)
    parts = []
    if hundreds:
        parts.append(f"{_ONES[hundreds]} Hundred")
    if rest:
        parts.append(_two_digits(rest))
    return " ".join(parts)


def number_in_words(n: int) -> str:
    """Indian numbering: crore, lakh, thousand, hundred."""

    if n == 0:
        return "Zero"
    parts = []
    crore, n = divmod(n, 10_000_000)
    lakh, n = divmod(n, 100_000)
    thousand, n = divmod(n, 1000)
    if crore:
        parts.append(f"{number_in_words(crore)} Crore")
    if lakh:
        parts.append(f"{_two_digits(lakh)} Lakh")
    if thousand:
        parts.append(f"{_two_digits(thousand)} Thousand")
    if n:
        parts.append(_three_digits(n))
    return " ".join(parts)


def amount_in_words(amount: Any) -> str:
    value = _money(amount)
    rupees = int(value)
    paise = int((value - rupees) * 100)
    words = f"Rupees {number_in_words(rupees)}"
    if paise:
        words += f" and {_two_digits(paise)} Paise"
    return f"{words} Only"


def render_invoice_html(invoice: GstInvoice, totals: InvoiceTotals) -> str:
    esc = html.escape
    tax_headers = "<th>CGST</th><th>SGST</th>" if totals.intra_state else "<th>IGST</th>"
    body_rows = []
    for index, row in enumerate(totals.lines, start=1):
        taxes = (
            f"<td>{row['cgst']}</td><td>{row['sgst']}</td>" if totals.intra_state else f"<td>{row['igst']}</td>"
        )
        body_rows.append(
            f"<tr><td>{index}</td><td>{esc(row['description'])}</td><td>{esc(row['hsn'])}</td>"
            f"<td>{row['quantity']}</td><td>{row['rate']:g}%</td><td>{row['taxable']}</td>{taxes}"
            f"<td>{row['total']}</td></tr>"
        )
    summary_taxes = (
        f"<div>CGST: {totals.cgst}</div><div>SGST: {totals.sgst}</div>"
        if totals.intra_state
        else f"<div>IGST: {totals.igst}</div>"
    )
    seller, buyer = invoice.seller, invoice.buyer
    return f"""<!DOCTYPE html>
<html><head><meta charset="UTF-8"><title>Tax Invoice {esc(invoice.number)}</title>
<style>body{{font-family:Arial,sans-serif;font-size:13px}}table{{border-collapse:collapse;width:100%}}
td,th{{border:1px solid #999;padding:4px 6px;text-align:left}}</style></head>
<body>
<h2>Tax Invoice</h2>
<div>Invoice No: {esc(invoice.number)} &nbsp; Date: {invoice.invoice_date.strftime('%d-%m-%Y')}</div>
<div>Order: {esc(invoice.order_number or '-')}</div>
<h3>Seller</h3><div>{esc(seller.name)}<br>{esc(seller.address)}<br>{esc(seller.state)}<br>GSTIN: {esc(seller.gstin or '-')}</div>
<h3>Bill To</h3><div>{esc(buyer.name)}<br>{esc(buyer.address)}<br>{esc(buyer.state)}<br>GSTIN: {esc(buyer.gstin or '-')}</div>
<div>Place of supply: {esc(invoice.place_of_supply or buyer.state or '-')}</div>
<table><thead><tr><th>#</th><th>Item</th><th>HSN</th><th>Qty</th><th>GST</th><th>Taxable</th>{tax_headers}<th>Total</th></tr></thead>
<tbody>{''.join(body_rows)}</tbody></table>
<div>Taxable value: {totals.taxable}</div>{summary_taxes}
<div><strong>Grand total: {totals.grand_total}</strong></div>
<div>{esc(totals.amount_in_words)}</div>
</body></html>"""
