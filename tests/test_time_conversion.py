from datetime import datetime, timezone
from zoneinfo import ZoneInfoNotFoundError

import pytest

from roster_api.services.time_conversion import (
    CivilDateTime,
    ConversionError,
    ConversionResult,
    DisplayPrecision,
    TimeConversionService,
    DISPLAY_PLACEHOLDER,
)

UTC = timezone.utc


@pytest.fixture(scope="module")
def tc():
    return TimeConversionService("Australia/Melbourne")


def _store(tc, text):
    res = tc.storage_from_civil(text)
    assert res.ok, res
    return res.value


# ---------- parse + store ----------

def test_summer_time_uses_aedt_offset(tc):
    assert _store(tc, "2025-01-15 14:30") == "2025-01-15 03:30:00"


def test_winter_time_uses_aest_offset(tc):
    assert _store(tc, "2025-07-15 14:30") == "2025-07-15 04:30:00"


def test_date_only_is_local_midnight(tc):
    date_only = tc.parse_civil_to_instant("2025-01-15")
    midnight = tc.parse_civil_to_instant("2025-01-15 00:00")
    assert date_only.ok and midnight.ok
    assert date_only.value == midnight.value
    assert _store(tc, "2025-01-15") == "2025-01-14 13:00:00"


def test_seconds_are_kept_for_storage(tc):
    assert _store(tc, "2025-01-15 14:30:45") == "2025-01-15 03:30:45"


def test_parsed_instant_is_aware_utc(tc):
    res = tc.parse_civil_to_instant("2025-07-20 07:00")
    assert res.value.tzinfo is not None
    assert res.value.utcoffset().total_seconds() == 0
    assert res.value == datetime(2025, 7, 19, 21, 0, tzinfo=UTC)


def test_iso_fallback_naive_is_reference_zone(tc):
    assert _store(tc, "2025-01-15T14:30") == "2025-01-15 03:30:00"


@pytest.mark.parametrize("text", [
    "2025-01-15T03:30:00Z",
    "2025-01-15T14:30:00+11:00",
    "2025-01-15T03:30:00+00:00",
])
def test_iso_fallback_with_offset_is_honoured(tc, text):
    assert _store(tc, text) == "2025-01-15 03:30:00"


def test_surrounding_whitespace_is_ignored(tc):
    assert _store(tc, "  2025-01-15 14:30 ") == "2025-01-15 03:30:00"


@pytest.mark.parametrize("bad", [
    None,
    "",
    "   ",
    "15/01/2025",
    "not a date",
    "2025-02-30",
    "2025-01-15 25:00",
    "2025-01-15 14:60:00",
    12345,
])
def test_malformed_input_is_invalid_format(tc, bad):
    res = tc.parse_civil_to_instant(bad)
    assert not res.ok
    assert res.error is ConversionError.INVALID_FORMAT
    assert res.value is None


def test_malformed_input_never_raises_through_storage_helper(tc):
    res = tc.storage_from_civil("yesterday-ish")
    assert res.error is ConversionError.INVALID_FORMAT


def test_aware_datetime_input_converts_to_utc(tc):
    from zoneinfo import ZoneInfo
    dt = datetime(2025, 1, 15, 14, 30, tzinfo=ZoneInfo("Australia/Melbourne"))
    assert tc.parse_civil_to_instant(dt).value == datetime(2025, 1, 15, 3, 30, tzinfo=UTC)


def test_naive_datetime_input_is_civil(tc):
    assert tc.parse_civil_to_instant(datetime(2025, 7, 15, 14, 30)).value == \
        datetime(2025, 7, 15, 4, 30, tzinfo=UTC)


# ---------- DST gap / overlap policy ----------

def test_spring_forward_gap_shifts_forward(tc):
    # 2025-10-05: clocks jump 02:00 AEST -> 03:00 AEDT, 02:30 never happens
    res = tc.parse_civil_to_instant("2025-10-05 02:30")
    assert res.ok
    assert ConversionError.AMBIGUOUS_OR_NONEXISTENT_LOCAL_TIME in res.warnings
    assert tc.format_instant_for_storage(res.value).value == "2025-10-04 16:30:00"
    assert tc.format_for_display(res.value) == "2025-10-05 03:30"


def test_spring_forward_gap_is_consistent(tc):
    a = tc.parse_civil_to_instant("2025-10-05 02:00")
    b = tc.parse_civil_to_instant("2025-10-05 02:59")
    assert tc.format_for_display(a.value) == "2025-10-05 03:00"
    assert tc.format_for_display(b.value) == "2025-10-05 03:59"
    assert a.value < b.value


def test_fall_back_overlap_picks_earlier_instant(tc):
    # 2025-04-06: clocks go 03:00 AEDT -> 02:00 AEST, 02:30 happens twice
    res = tc.parse_civil_to_instant("2025-04-06 02:30")
    assert res.ok
    assert ConversionError.AMBIGUOUS_OR_NONEXISTENT_LOCAL_TIME in res.warnings
    # first occurrence is still on AEDT (+11)
    assert tc.format_instant_for_storage(res.value).value == "2025-04-05 15:30:00"
    assert tc.format_for_display(res.value) == "2025-04-06 02:30"


def test_dst_adjustment_is_logged(tc, caplog):
    with caplog.at_level("WARNING", logger="roster_api.services.time_conversion"):
        tc.parse_civil_to_instant("2025-10-05 02:15")
    assert any("nonexistent" in r.getMessage() for r in caplog.records)


def test_normal_times_carry_no_warning(tc):
    assert tc.parse_civil_to_instant("2025-04-06 04:00").warnings == ()
    assert tc.parse_civil_to_instant("2025-10-05 01:59").warnings == ()


def test_storage_helper_keeps_dst_warning(tc):
    res = tc.storage_from_civil("2025-04-06 02:30")
    assert res.ok
    assert res.warnings == (ConversionError.AMBIGUOUS_OR_NONEXISTENT_LOCAL_TIME,)


@pytest.mark.parametrize("civil,stored", [
    ("2025-04-05 00:00", "2025-04-04 13:00:00"),
    ("2025-04-05 23:59", "2025-04-05 12:59:00"),
    ("2025-04-06 00:00", "2025-04-05 13:00:00"),
    ("2025-04-06 23:59", "2025-04-06 13:59:00"),
    ("2025-04-07 00:00", "2025-04-06 14:00:00"),
    ("2025-10-04 23:59", "2025-10-04 13:59:00"),
    ("2025-10-05 00:00", "2025-10-04 14:00:00"),
    ("2025-10-05 23:59", "2025-10-05 12:59:00"),
    ("2025-10-06 00:00", "2025-10-05 13:00:00"),
])
def test_day_boundaries_round_trip_around_transitions(tc, civil, stored):
    assert _store(tc, civil) == stored
    assert tc.format_for_display(stored) == civil


# ---------- instant -> civil / display ----------

def test_instant_to_civil_uses_offset_of_that_instant(tc):
    summer = tc.instant_to_civil(datetime(2025, 1, 15, 3, 30, tzinfo=UTC))
    winter = tc.instant_to_civil(datetime(2025, 7, 15, 4, 30, tzinfo=UTC))
    assert summer.value == CivilDateTime(2025, 1, 15, 14, 30, 0)
    assert winter.value == CivilDateTime(2025, 7, 15, 14, 30, 0)


def test_instant_to_civil_reads_storage_strings_as_utc(tc):
    assert tc.instant_to_civil("2025-01-15 03:30:00").value == CivilDateTime(2025, 1, 15, 14, 30)


def test_naive_datetime_from_db_is_utc(tc):
    assert tc.instant_to_civil(datetime(2025, 1, 15, 3, 30)).value == CivilDateTime(2025, 1, 15, 14, 30)


def test_display_truncates_seconds(tc):
    instant = datetime(2025, 1, 15, 3, 30, 59, tzinfo=UTC)  # 14:30:59 local
    assert tc.format_for_display(instant) == "2025-01-15 14:30"
    assert tc.format_for_display(instant, DisplayPrecision.TIME_MINUTES) == "14:30"


def test_display_date_only(tc):
    assert tc.format_for_display("2025-01-14 13:00:00", DisplayPrecision.DATE_ONLY) == "2025-01-15"


@pytest.mark.parametrize("missing", [None, "", "garbage", 42, ConversionResult.failure(ConversionError.INVALID_FORMAT)])
def test_display_never_renders_null(tc, missing):
    out = tc.format_for_display(missing)
    assert out == DISPLAY_PLACEHOLDER
    assert out not in ("None", "null", "Invalid Date")


def test_display_custom_placeholder(tc):
    assert tc.format_for_display(None, placeholder="-") == "-"


def test_civil_for_api_returns_none_for_nothing_stored(tc):
    assert tc.civil_for_api(None) is None
    assert tc.civil_for_api("2025-07-15 04:30:00") == "2025-07-15 14:30"


def test_display_is_idempotent(tc):
    instant = tc.parse_civil_to_instant("2025-03-01 08:15").value
    assert tc.format_for_display(instant) == tc.format_for_display(instant) == "2025-03-01 08:15"


# ---------- storage formatting ----------

def test_storage_format_shape(tc):
    res = tc.format_instant_for_storage(datetime(2025, 1, 5, 3, 4, 5, tzinfo=UTC))
    assert res.value == "2025-01-05 03:04:05"


def test_storage_accepts_a_successful_result(tc):
    parsed = tc.parse_civil_to_instant("2025-01-15 14:30")
    assert tc.format_instant_for_storage(parsed).value == "2025-01-15 03:30:00"


@pytest.mark.parametrize("bad", [None, "nope", 3.5, ConversionResult.failure(ConversionError.INVALID_FORMAT)])
def test_storage_of_missing_instant_is_invalid_instant(tc, bad):
    res = tc.format_instant_for_storage(bad)
    assert not res.ok
    assert res.error is ConversionError.INVALID_INSTANT


# ---------- whole-pipeline properties ----------

def test_storage_display_consistency(tc):
    stored = tc.format_instant_for_storage(tc.parse_civil_to_instant("2025-01-15 14:30")).value
    civil = tc.instant_to_civil(stored).value
    assert civil.format(DisplayPrecision.DATE_TIME_MINUTES) == "2025-01-15 14:30"
    assert tc.format_for_display(stored) == "2025-01-15 14:30"


@pytest.mark.parametrize("day", ["2025-01-15", "2025-07-20", "2024-02-29", "2025-12-31"])
def test_round_trip_every_quarter_hour(tc, day):
    for hour in range(24):
        for minute in (0, 15, 30, 45, 59):
            text = f"{day} {hour:02d}:{minute:02d}"
            assert tc.format_for_display(tc.parse_civil_to_instant(text).value) == text


def test_round_trip_with_seconds_drops_seconds(tc):
    assert tc.format_for_display(tc.parse_civil_to_instant("2025-07-20 07:00:42").value) == "2025-07-20 07:00"


# ---------- other reference zones ----------

def test_reference_zone_is_per_instance():
    utc = TimeConversionService("UTC")
    perth = TimeConversionService("Australia/Perth")
    assert utc.storage_from_civil("2025-01-15 14:30").value == "2025-01-15 14:30:00"
    assert perth.storage_from_civil("2025-01-15 14:30").value == "2025-01-15 06:30:00"


def test_new_york_gap_shifts_forward():
    ny = TimeConversionService("America/New_York")
    res = ny.parse_civil_to_instant("2025-03-09 02:30")
    assert res.warnings
    assert ny.format_for_display(res.value) == "2025-03-09 03:30"


def test_unknown_zone_is_a_programming_error():
    with pytest.raises(ZoneInfoNotFoundError):
        TimeConversionService("Mars/Olympus_Mons")


def test_civil_datetime_str_is_storage_shape():
    assert str(CivilDateTime(2025, 1, 5, 7, 8, 9)) == "2025-01-05 07:08:09"


# ---------- years below 1000 ----------

def test_three_digit_years_keep_four_digit_storage():
    utc = TimeConversionService("UTC")
    assert utc.storage_from_civil("0999-06-15 12:00").value == "0999-06-15 12:00:00"
    assert utc.format_for_display("0999-06-15 12:00:00") == "0999-06-15 12:00"
    assert utc.format_for_display("0999-06-15 12:00:00", DisplayPrecision.DATE_ONLY) == "0999-06-15"


def test_early_year_round_trips_in_reference_zone(tc):
    stored = _store(tc, "0999-06-15 12:00")
    assert stored.startswith("0999-06-15 ")
    assert tc.format_for_display(stored) == "0999-06-15 12:00"
    assert tc.format_for_display(tc.parse_civil_to_instant("0999-06-15 12:00").value) == "0999-06-15 12:00"


def test_civil_datetime_pads_every_precision():
    c = CivilDateTime(7, 1, 2, 3, 4, 5)
    assert str(c) == "0007-01-02 03:04:05"
    assert c.format(DisplayPrecision.DATE_ONLY) == "0007-01-02"
    assert c.format(DisplayPrecision.DATE_TIME_MINUTES) == "0007-01-02 03:04"
    assert c.format(DisplayPrecision.TIME_MINUTES) == "03:04"
