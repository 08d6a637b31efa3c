"""Tests for GST invoice totals, checks and wording."""
from datetime import date
from decimal import Decimal

import pytest

from opsconsole.processing.gst import (
    GstInvoice,
    InvoiceLine,
    Party,
    amount_in_words,
    compute_invoice,
    financial_year,
    invoice_number,
    is_intra_state,
    number_in_words,
    render_invoice_html,
    validate_invoice,
)

SELLER = Party(name="TSMC Creations India", state="Tamil Nadu", gstin="33ABCDE1234F1Z5")


def _invoice(buyer: Party, *lines: InvoiceLine, seller: Party = SELLER) -> GstInvoice:
    return GstInvoice(
        number="AW/2024-25/0007",
        invoice_date=date(2024, 6, 1),
        seller=seller,
        buyer=buyer,
        lines=list(lines),
        order_number="1001",
    )


def test_financial_year_and_number():
    assert financial_year(date(2024, 3, 31)) == "2023-24"
    assert financial_year(date(2024, 4, 1)) == "2024-25"
    assert invoice_number("AW", 7, date(2024, 6, 1)) == "AW/2024-25/0007"


def test_intra_state_detection():
    assert is_intra_state(SELLER, Party(name="Priya", state="tamil nadu"))
    assert not is_intra_state(SELLER, Party(name="Ravi", state="Kerala"))
    assert not is_intra_state(SELLER, Party(name="Shop", gstin="32XYZAB1234C1Z9"))
    assert is_intra_state(SELLER, Party(name="Ravi", state="Kerala"), place_of_supply="Tamil Nadu")


def test_tax_inclusive_intra_state_split():
    invoice = _invoice(Party(name="Priya", state="Tamil Nadu"), InvoiceLine("Millet mix", 2, 105))

    totals = compute_invoice(invoice)

    assert totals.intra_state
    assert totals.taxable == Decimal("200.00")
    assert totals.cgst == Decimal("5.00")
    assert totals.sgst == Decimal("5.00")
    assert totals.igst == Decimal("0.00")
    assert totals.grand_total == Decimal("210.00")
    assert totals.amount_in_words == "Rupees Two Hundred Ten Only"
    assert validate_invoice(invoice, totals) == []


def test_tax_exclusive_inter_state():
    invoice = _invoice(Party(name="Ravi", state="Kerala"), InvoiceLine("Millet mix", 1, 100, tax_inclusive=False))

    totals = compute_invoice(invoice)

    assert not totals.intra_state
    assert totals.igst == Decimal("5.00")
    assert totals.cgst == totals.sgst == Decimal("0.00")
    assert totals.grand_total == Decimal("105.00")


def test_invalid_invoices():
    with pytest.raises(ValueError, match="at least one line"):
        compute_invoice(_invoice(Party(name="Priya")))
    with pytest.raises(ValueError, match="Quantity must be positive"):
        compute_invoice(_invoice(Party(name="Priya"), InvoiceLine("Millet mix", 0, 100)))


def test_validate_invoice_flags_missing_parties():
    invoice = _invoice(Party(name="", state="Tamil Nadu"), InvoiceLine("Millet mix", 1, 105), seller=Party(name="Shop", state="Tamil Nadu"))

    issues = validate_invoice(invoice, compute_invoice(invoice))

    assert "Seller GSTIN missing" in issues
    assert "Buyer name missing" in issues


def test_numbers_in_words():
    assert number_in_words(0) == "Zero"
    assert number_in_words(12345678) == "One Crore Twenty Three Lakh Forty Five Thousand Six Hundred Seventy Eight"
    assert amount_in_words("1050.50") == "Rupees One Thousand Fifty and Fifty Paise Only"


def test_render_invoice_html_lists_taxes():
    invoice = _invoice(Party(name="Priya & Co", state="Tamil Nadu"), InvoiceLine("Millet mix", 2, 105, hsn="1904"))

    html = render_invoice_html(invoice, compute_invoice(invoice))

    assert "<th>CGST</th><th>SGST</th>" in html
    assert "Priya &amp; Co" in html
    assert "Grand total: 210.00" in html
    assert "01-06-2024" in html
