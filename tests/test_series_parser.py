from metalpulse.models import PricePoint
from metalpulse.series_parser import parse_series


def test_parse_drops_non_positive_and_non_numeric_rows():
    text = "date,close\n2024-01-01,100\n2024-01-02,abc\n2024-01-03,-5"
    assert parse_series(text) == [PricePoint('2024-01-01', 100.0)]


def test_parse_sorts_rows_by_date():
    text = (
        "Date,Open,High,Low,Close,Volume\n"
        "2024-01-03,1,1,1,2050.5,0\n"
        "2024-01-01,1,1,1,2040.0,0\n"
        "2024-01-02,1,1,1,2045.25,0\n"
    )
    rows = parse_series(text)
    assert [p.date for p in rows] == ['2024-01-01', '2024-01-02', '2024-01-03']
    assert [p.close for p in rows] == [2040.0, 2045.25, 2050.5]


def test_row_order_does_not_matter():
    lines = ["2024-02-01,10", "2024-01-15,9", "2024-03-01,11"]
    forward = parse_series("date,close\n" + "\n".join(lines))
    backward = parse_series("date,close\n" + "\n".join(reversed(lines)))
    assert forward == backward


def test_semicolon_delimiter_detected_from_header():
    text = "DATE;CLOSE\n2024-01-02;31.5\n2024-01-01;30.25"
    assert parse_series(text) == [PricePoint('2024-01-01', 30.25), PricePoint('2024-01-02', 31.5)]


def test_missing_columns_or_short_payload_yield_empty():
    assert parse_series("date,open\n2024-01-01,1") == []
    assert parse_series("date,close") == []
    assert parse_series("") == []
    assert parse_series(None) == []
    assert parse_series("Exceeded the daily hits limit") == []


def test_blank_lines_and_short_rows_ignored():
    text = "\n\ndate,close\n\n2024-01-01,5\n2024-01-02\n,7\n2024-01-03,inf\n"
    assert parse_series(text) == [PricePoint('2024-01-01', 5.0)]


def test_parse_is_idempotent_through_csv():
    text = "date,close\n2024-01-02,2\n2024-01-01,1"
    first = parse_series(text)
    again = parse_series("date,close\n" + "\n".join(f"{p.date},{p.close}" for p in first))
    assert again == first
