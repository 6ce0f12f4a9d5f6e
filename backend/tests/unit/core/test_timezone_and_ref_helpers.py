from datetime import date, datetime, time, timezone
import re

from goreserve.core.timezone_utils import ensure_aware, get_timezone, local_today, localize
from goreserve.core.ulid_helper import (
    generate_booking_ref,
    generate_ulid,
    get_timestamp_from_ulid,
    is_valid_ulid,
)


def test_localize_uses_business_timezone():
    at = localize(date(2030, 7, 1), time(9), "America/New_York")
    assert at.utcoffset().total_seconds() == -4 * 3600
    assert at.astimezone(timezone.utc).hour == 13


def test_unknown_timezone_falls_back_to_utc():
    assert get_timezone("Mars/Olympus_Mons").zone == "UTC"


def test_naive_datetimes_are_treated_as_utc():
    aware = ensure_aware(datetime(2030, 1, 7, 8))
    assert aware.utcoffset().total_seconds() == 0


def test_local_today_can_differ_from_utc_date():
    now = datetime(2030, 1, 7, 2, 0, tzinfo=timezone.utc)
    assert local_today(now, "UTC") == date(2030, 1, 7)
    assert local_today(now, "America/Los_Angeles") == date(2030, 1, 6)


def test_booking_ref_format():
    refs = {generate_booking_ref() for _ in range(50)}
    assert all(re.fullmatch(r"BK[A-Z0-9]{8}", ref) for ref in refs)
    assert len(refs) > 1


def test_ulid_helpers():
    value = generate_ulid()
    assert len(value) == 26
    assert is_valid_ulid(value)
    assert not is_valid_ulid("not-a-ulid")
    assert get_timestamp_from_ulid(value) is not None
    assert get_timestamp_from_ulid("nope") is None
