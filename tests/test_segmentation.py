"""Tests for address parsing and segment counts."""
from opsconsole.processing.segmentation import parse_from_address, segment_counts

ROWS = [
    {"address": "12 MG Road, Gandhipuram, Coimbatore, Tamil Nadu 641012", "order_date": "2024-03-01", "status": "Delivered"},
    {"state": "Kerala", "address": "Ward 4, Kochi, 682001", "order_date": "2024-03-02", "status": "Shipped"},
    {"address": "Anna Nagar, Madurai, Tamil Nadu 625020", "order_date": "2024-03-03", "status": "Delivered"},
]


def test_parse_from_address_parts():
    assert parse_from_address("12 MG Road, Gandhipuram, Coimbatore, Tamil Nadu 641012") == {
        "state": "Tamil Nadu",
        "city": "Coimbatore",
        "pincode": "641012",
        "area": "12 MG Road, Gandhipuram",
    }


def test_parse_from_address_short_and_empty():
    assert parse_from_address("Chennai, 600001") == {
        "state": "Chennai",
        "city": None,
        "pincode": "600001",
        "area": None,
    }
    assert parse_from_address(None) == {"state": None, "city": None, "pincode": None, "area": None}


def test_segment_counts_by_state():
    assert segment_counts(ROWS) == [
        {"state": "Tamil Nadu", "count": 2},
        {"state": "Kerala", "count": 1},
    ]


def test_segment_counts_with_filters():
    delivered = segment_counts(ROWS, ["state", "city"], status="deliv")

    assert delivered == [
        {"state": "Tamil Nadu", "city": "Coimbatore", "count": 1},
        {"state": "Tamil Nadu", "city": "Madurai", "count": 1},
    ]
    assert segment_counts(ROWS, ["bogus"], start="2024-03-02") == [
        {"state": "Kerala", "count": 1},
        {"state": "Tamil Nadu", "count": 1},
    ]
