"""Tests for NDR bucket classification and the NDR table helpers."""
import json
from datetime import date, datetime

import pytest

from opsconsole.core.models import NdrRecord
from opsconsole.processing.buckets import (
    ADDRESS_ISSUE,
    CNA,
    DELIVERED,
    OTHER,
    PENDING,
    PREMISES_CLOSED,
    RTO,
    courier_name,
    edd_status,
    effective_bucket,
    to_bucket,
    tracking_url,
    with_bucket_override,
)
from opsconsole.processing.ndr import (
    NdrFilter,
    column_uniques,
    courier_options,
    enrich,
    filter_rows,
    needs_refresh,
    remark_tabs,
    stats,
)


@pytest.mark.parametrize(
    "fields, expected",
    [
        ({"delivery_status": "Consignee Not Available"}, CNA),
        ({"delivery_status": "Premises closed on attempt"}, PREMISES_CLOSED),
        ({"delivery_status": "Need department name"}, ADDRESS_ISSUE),
        ({"delivery_status": "Incomplete address"}, ADDRESS_ISSUE),
        ({"delivery_status": "Pending"}, PENDING),
        ({"ndr_desc": "No attempt made today"}, PENDING),
        ({"rto_awb": "RTO123"}, RTO),
        ({"delivery_status": "In transit"}, OTHER),
    ],
)
def test_to_bucket_priority(fields, expected):
    assert to_bucket(NdrRecord(id=1, **fields)) == expected


def test_delivered_remark_wins_over_status():
    record = NdrRecord(id=1, delivery_status="Consignee Not Available", remark="Delivered to guard", rto_awb="R1")

    assert to_bucket(record) == DELIVERED


def test_bucket_override_from_notes():
    record = NdrRecord(id=1, delivery_status="Consignee Not Available")
    record.notes = with_bucket_override(record.notes, RTO)

    assert effective_bucket(record) == RTO
    assert to_bucket(record) == CNA


def test_bucket_override_rejects_unknown_bucket():
    with pytest.raises(ValueError, match="Unknown bucket"):
        with_bucket_override(None, "Lost")


def test_bucket_override_keeps_other_notes():
    notes = with_bucket_override('{"phone": "9876543210"}', PENDING)

    assert '"phone": "9876543210"' in notes
    assert '"bucket_override": "Pending"' in notes


def test_courier_name_and_tracking_url():
    assert courier_name("bluedart_surface_2") == "Bluedart"
    assert courier_name("DELHIVERY_B2C") == "Delhivery"
    assert courier_name("ekart") == "ekart"
    assert courier_name(None) == "—"
    assert tracking_url("AWB1") == "https://aurawill.clickpost.ai/en?waybill=AWB1"
    assert tracking_url("") == ""


def test_edd_status_tones():
    today = date(2024, 3, 5)

    overdue = edd_status("2024-03-02", today)
    assert (overdue.label, overdue.tone, overdue.diff) == ("3d overdue", "late", -3)
    assert edd_status("05/03/2024", today).label == "Due today"
    upcoming = edd_status("2024-03-07T18:00:00", today)
    assert (upcoming.label, upcoming.tone) == ("In 2d", "ok")
    missing = edd_status("sometime", today)
    assert (missing.label, missing.tone) == ("—", "na")


def test_enrich_and_stats(ndr_rows):
    rows = enrich([NdrRecord.from_row(r) for r in ndr_rows], today=date(2024, 3, 5))

    assert [r.bucket for r in rows] == [CNA, ADDRESS_ISSUE, DELIVERED]
    assert rows[0].phone == "9876543210"
    assert rows[2].notes.phone is None
    assert stats(rows) == {
        "total": 3,
        "late": 1,
        "today": 0,
        "cna": 1,
        "addr": 1,
        "delivered": 1,
        "resolved": 1,
    }


def test_filter_rows_date_range_drops_undated(ndr_rows):
    rows = enrich([NdrRecord.from_row(r) for r in ndr_rows], today=date(2024, 3, 5))

    result = filter_rows(rows, NdrFilter(date_from=date(2024, 3, 6), date_to=date(2024, 3, 6)))

    assert [r.record.id for r in result] == [2]


def test_filter_rows_toolbar_and_search(ndr_rows):
    rows = enrich([NdrRecord.from_row(r) for r in ndr_rows], today=date(2024, 3, 5))

    assert [r.record.id for r in filter_rows(rows, NdrFilter(courier="Delhivery"))] == [2, 3]
    assert [r.record.id for r in filter_rows(rows, NdrFilter(search="98765"))] == [1]
    assert [r.record.id for r in filter_rows(rows, NdrFilter(stat="cna_addr"))] == [1, 2]
    assert [r.record.id for r in filter_rows(rows, NdrFilter(columns={"courier": ["Bluedart"]}))] == [1]
    assert filter_rows(rows, NdrFilter(my_only=True, current_user="asha")) == []


def test_tabs_and_options(ndr_rows):
    rows = enrich([NdrRecord.from_row(r) for r in ndr_rows], today=date(2024, 3, 5))

    tabs, overflow = remark_tabs(rows, top=2)

    assert tabs[0] == "All"
    assert len(tabs) == 3
    assert len(overflow) == 1
    assert courier_options(rows) == ["Bluedart", "Delhivery"]
    assert column_uniques(rows, "email") == ["No"]


def test_needs_refresh():
    now = datetime(2024, 3, 5, 12, 0, 0)

    assert needs_refresh(None, now)
    assert not needs_refresh(datetime(2024, 3, 5, 11, 56, 0), now, 300)
    assert needs_refresh(datetime(2024, 3, 5, 11, 55, 0), now, 300)


def test_bucket_override_keeps_other_note_keys():
    text = json.dumps({"phone": "999", "history": ["x"], "email_thread": "t1"})

    assert json.loads(with_bucket_override(text, RTO)) == {
        "phone": "999",
        "history": ["x"],
        "email_thread": "t1",
        "bucket_override": "RTO",
    }
