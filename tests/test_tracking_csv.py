"""Tests for parsing bulk tracking uploads."""
import pytest

from opsconsole.processing.tracking_csv import entries_to_rows, parse_tracking_csv

NOW = "2024-03-05T12:00:00.000Z"


def test_parse_keeps_complete_rows_only():
    text = (
        "Order,Tracking,Date,Phone\n"
        "1001,AWB1,05/03/2024,9876543210\n"
        "1002,,05/03/2024,\n"
        ",AWB3,,\n"
        "\n"
        '1004,"AWB4",garbage,\n'
    )

    entries = parse_tracking_csv(text, now=NOW)

    assert [(e.order_number, e.tracking_code) for e in entries] == [("1001", "AWB1"), ("1004", "AWB4")]
    assert entries[0].timestamp == "2024-03-05T00:00:00"
    assert entries[0].phone_number == "9876543210"
    assert entries[1].timestamp == NOW
    assert entries[1].phone_number is None


def test_quoted_cells_keep_commas():
    text = 'order id,awb number,mobile\n1005,AWB5,"+91 98765, 43210"\n'

    entries = parse_tracking_csv(text, now=NOW)

    assert entries[0].phone_number == "+91 98765, 43210"
    assert entries[0].timestamp == NOW


def test_byte_order_mark_is_ignored():
    entries = parse_tracking_csv("\ufeffOrder,Tracking\n1006,AWB6\n", now=NOW)

    assert entries[0].order_number == "1006"


def test_missing_columns_raise():
    with pytest.raises(ValueError, match="order column and a tracking column"):
        parse_tracking_csv("Order,Courier\n1001,Bluedart\n")


def test_empty_text_gives_no_entries():
    assert parse_tracking_csv("   \n") == []


def test_entries_to_rows_uses_webhook_keys():
    entries = parse_tracking_csv("Order,Tracking\n1007,AWB7\n", now=NOW)

    assert entries_to_rows(entries) == [
        {"orderNumber": "1007", "trackingCode": "AWB7", "timestamp": NOW, "phoneNumber": ""}
    ]
