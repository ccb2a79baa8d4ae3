import datetime as dt

from app.utils.helpers import as_utc, from_epoch, mask_code, month_bounds
from app.utils.sanitization import sanitize_display_name


def test_as_utc_attaches_zone_to_naive_values():
    naive = dt.datetime(2024, 5, 1, 12, 0)
    assert as_utc(naive) == dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)
    assert as_utc(None) is None


def test_as_utc_leaves_aware_values_alone():
    aware = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone(dt.timedelta(hours=2)))
    assert as_utc(aware) is aware


def test_from_epoch_handles_numeric_strings_and_garbage():
    assert from_epoch("0") == dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)
    assert from_epoch(1_600_000_000.0).year == 2020
    assert from_epoch("not-a-number") is None
    assert from_epoch(None) is None


def test_month_bounds_mid_month():
    start, end = month_bounds(dt.datetime(2024, 2, 14, 9, 30, tzinfo=dt.timezone.utc))
    assert start == dt.datetime(2024, 2, 1, tzinfo=dt.timezone.utc)
    assert end == dt.datetime(2024, 2, 29, tzinfo=dt.timezone.utc)


def test_month_bounds_december_rolls_year():
    start, end = month_bounds(dt.datetime(2023, 12, 31, 23, 59, tzinfo=dt.timezone.utc))
    assert start == dt.datetime(2023, 12, 1, tzinfo=dt.timezone.utc)
    assert end == dt.datetime(2023, 12, 31, tzinfo=dt.timezone.utc)


def test_mask_code_only_keeps_prefix():
    assert mask_code("abcdefghijkl") == "abcde..."
    assert mask_code(None) == "<none>"


def test_sanitize_display_name():
    assert sanitize_display_name("  Jane \t\n  Doe ") == "Jane Doe"
    assert sanitize_display_name("<b>x</b>") == "&lt;b&gt;x&lt;/b&gt;"
    assert len(sanitize_display_name("a" * 500)) == 100
