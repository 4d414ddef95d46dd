from alarm_insights.timestamps import AUTO, DateFormatCache, cached_format_variants, is_missing, resolve_timestamp

from .conftest import ms


def test_detects_month_first_format_and_caches_it():
    cache = DateFormatCache()
    assert resolve_timestamp("01/15/2024 10:00:00", cache) == ms(2024, 1, 15, 10, 0, 0)
    assert cache.format == "%m/%d/%Y %H:%M:%S"
    assert cache.detected


def test_resolution_is_idempotent():
    cache = DateFormatCache()
    first = resolve_timestamp("2024-01-15 10:00:00", cache)
    second = resolve_timestamp("2024-01-15 10:00:00", cache)
    assert first == second == ms(2024, 1, 15, 10, 0, 0)


def test_cached_format_is_applied_without_redetection():
    cache = DateFormatCache()
    resolve_timestamp("01/15/2024 10:00:00", cache)
    # Day-first string no longer fits the cached month-first format
    assert is_missing(resolve_timestamp("15/01/2024 10:00:00", cache))


def test_twelve_hour_clock():
    cache = DateFormatCache()
    assert resolve_timestamp("01/15/2024 02:30:00 PM", cache) == ms(2024, 1, 15, 14, 30, 0)


def test_whitespace_is_collapsed():
    cache = DateFormatCache()
    assert resolve_timestamp("  01/15/2024    10:00:00 ", cache) == ms(2024, 1, 15, 10, 0, 0)


def test_permissive_fallback_caches_auto():
    cache = DateFormatCache()
    assert resolve_timestamp("2024-01-15T10:00:00Z", cache) == ms(2024, 1, 15, 10, 0, 0)
    assert cache.format == AUTO
    assert resolve_timestamp("2024-01-15T11:00:00Z", cache) == ms(2024, 1, 15, 11, 0, 0)


def test_unparseable_and_empty_return_nan():
    cache = DateFormatCache()
    assert is_missing(resolve_timestamp("not a date", cache))
    assert is_missing(resolve_timestamp("", cache))
    assert is_missing(resolve_timestamp(None, cache))
    assert cache.format is None


def test_reset_clears_detection():
    cache = DateFormatCache()
    resolve_timestamp("01/15/2024 10:00:00", cache)
    cache.reset()
    assert not cache.detected
    assert resolve_timestamp("2024-01-15 10:00:00", cache) == ms(2024, 1, 15, 10, 0, 0)
    assert cache.format == "%Y-%m-%d %H:%M:%S"


def test_fractional_seconds_after_whole_second_detection():
    cache = DateFormatCache()
    assert resolve_timestamp("2024-01-15 10:00:00", cache) == ms(2024, 1, 15, 10, 0, 0)
    assert resolve_timestamp("2024-01-15 10:00:01.250", cache) == ms(2024, 1, 15, 10, 0, 1) + 250
    assert resolve_timestamp("2024-01-15 10:00:02", cache) == ms(2024, 1, 15, 10, 0, 2)
    assert cache.format == "%Y-%m-%d %H:%M:%S"


def test_whole_seconds_after_fractional_detection():
    cache = DateFormatCache()
    assert resolve_timestamp("2024-01-15 10:00:00.500", cache) == ms(2024, 1, 15, 10, 0, 0) + 500
    assert cache.format == "%Y-%m-%d %H:%M:%S.%f"
    assert resolve_timestamp("2024-01-15 10:00:01", cache) == ms(2024, 1, 15, 10, 0, 1)
    assert resolve_timestamp("2024-01-15 10:02", cache) == ms(2024, 1, 15, 10, 2, 0)


def test_seconds_after_minute_precision_detection():
    cache = DateFormatCache()
    assert resolve_timestamp("1/5/2024 9:05", cache) == ms(2024, 1, 5, 9, 5, 0)
    assert cache.format == "%m/%d/%Y %H:%M"
    assert resolve_timestamp("1/5/2024 9:05:30", cache) == ms(2024, 1, 5, 9, 5, 30)
    assert resolve_timestamp("1/5/2024 9:05:30.125", cache) == ms(2024, 1, 5, 9, 5, 30) + 125


def test_minutes_after_second_precision_detection():
    cache = DateFormatCache()
    resolve_timestamp("01/15/2024 02:30:00 PM", cache)
    assert resolve_timestamp("01/15/2024 02:31 PM", cache) == ms(2024, 1, 15, 14, 31, 0)


def test_trailing_text_after_cached_layout():
    cache = DateFormatCache()
    resolve_timestamp("2024-01-15 10:00:00", cache)
    assert resolve_timestamp("2024-01-15 10:00:05 UTC+0", cache) == ms(2024, 1, 15, 10, 0, 5)


def test_cached_format_variants():
    assert cached_format_variants("%Y-%m-%d %H:%M:%S") == (
        "%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f", "%Y-%m-%d %H:%M",
    )
    assert cached_format_variants("%m/%d/%Y %H:%M")[0] == "%m/%d/%Y %H:%M"
    assert "%m/%d/%Y %H:%M:%S" in cached_format_variants("%m/%d/%Y %H:%M")
