from __future__ import annotations

import io
import locale
from datetime import datetime, timedelta, timezone

import pytest
from botocore.response import StreamingBody

from bucketproxy.proxy.backend import ObjectAttributes, ObjectReader
from bucketproxy.proxy.conditional import is_not_modified, parse_http_date
from bucketproxy.proxy.headers import accepts_gzip, format_http_date, object_headers


UPDATED = datetime(1994, 11, 6, 8, 49, 37, 250000, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value",
    [
        "Sun, 06 Nov 1994 08:49:37 GMT",
        "Sunday, 06-Nov-94 08:49:37 GMT",
        "Sun Nov  6 08:49:37 1994",
        "sun, 06 NOV 1994 08:49:37 GMT",
    ],
)
def test_parse_http_date_formats(value: str) -> None:
    assert parse_http_date(value) == datetime(1994, 11, 6, 8, 49, 37, tzinfo=timezone.utc)


def test_parse_http_date_ignores_process_locale() -> None:
    previous = locale.setlocale(locale.LC_TIME)
    for name in ("de_DE.UTF-8", "fr_FR.UTF-8", "es_ES.UTF-8", "de_DE"):
        try:
            locale.setlocale(locale.LC_TIME, name)
            break
        except locale.Error:
            continue
    else:
        pytest.skip("no non-English locale installed")
    try:
        assert parse_http_date("Tue, 15 Oct 2024 10:00:00 GMT") == datetime(2024, 10, 15, 10, 0, tzinfo=timezone.utc)
        assert parse_http_date("Thu, 02 May 2024 10:00:00 GMT").month == 5
    finally:
        locale.setlocale(locale.LC_TIME, previous)


def test_parse_http_date_knows_every_month() -> None:
    names = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    months = [parse_http_date(f"Mon, 01 {name} 2024 00:00:00 GMT").month for name in names]

    assert months == list(range(1, 13))


@pytest.mark.parametrize(
    "value",
    ["", "yesterday", "2024-01-02T03:04:05Z", "Sun, 06 Nov 1994 08:49:37 PST", "Sun, 31 Feb 1994 08:49:37 GMT"],
)
def test_parse_http_date_rejects_garbage(value: str) -> None:
    with pytest.raises(ValueError):
        parse_http_date(value)


def test_is_not_modified_truncates_to_seconds() -> None:
    since = datetime(1994, 11, 6, 8, 49, 37, tzinfo=timezone.utc)

    assert is_not_modified(UPDATED, since)
    assert is_not_modified(UPDATED, since + timedelta(days=1))
    assert not is_not_modified(UPDATED, since - timedelta(seconds=1))
    assert not is_not_modified(None, since)


def test_format_http_date() -> None:
    assert format_http_date(UPDATED) == "Sun, 06 Nov 1994 08:49:37 GMT"
    eastern = UPDATED.astimezone(timezone(timedelta(hours=-5)))
    assert format_http_date(eastern) == "Sun, 06 Nov 1994 08:49:37 GMT"


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("gzip", True),
        ("gzip, deflate, br", True),
        ("br;q=1.0, gzip;q=0.8", True),
        ("x-gzip", True),
        ("GZIP", True),
        ("gzip;q=0", False),
        ("xgzipx", False),
        ("deflate", False),
        ("identity", False),
        ("", False),
        (None, False),
    ],
)
def test_accepts_gzip(header, expected: bool) -> None:
    assert accepts_gzip(header) is expected


def _reader(encoding: str = "", size: int = 0) -> ObjectReader:
    return ObjectReader(StreamingBody(io.BytesIO(b""), 0), encoding, size, chunk_size=1024)


def test_object_headers_from_attributes_and_reader() -> None:
    attributes = ObjectAttributes(
        name="a.txt",
        content_type="text/plain",
        content_language="en",
        cache_control="no-cache",
        content_disposition="inline",
        content_encoding="gzip",
        updated=UPDATED,
        size=10,
        metadata={"owner": "ops", "secret": "x"},
    )

    headers = object_headers(attributes, _reader("gzip", 42), {"owner": "Owner"}, "X-Goog-Meta-")

    assert headers == {
        "Last-Modified": "Sun, 06 Nov 1994 08:49:37 GMT",
        "Content-Type": "text/plain",
        "Content-Language": "en",
        "Cache-Control": "no-cache",
        "Content-Encoding": "gzip",
        "Content-Disposition": "inline",
        "Content-Length": "42",
        "X-Goog-Meta-Owner": "ops",
    }


def test_object_headers_use_reader_encoding_and_size() -> None:
    attributes = ObjectAttributes(name="a.txt", content_encoding="gzip", size=10)

    headers = object_headers(attributes, _reader("", -1), {}, "X-Goog-Meta-")

    assert headers == {}


def test_object_headers_match_metadata_keys_case_insensitively() -> None:
    attributes = ObjectAttributes(name="a.txt", metadata={"owner": "ops", "team": "edge"})

    headers = object_headers(attributes, _reader(), {"owner": "Owner"}, "X-Amz-Meta-")

    assert headers == {"X-Amz-Meta-Owner": "ops"}
