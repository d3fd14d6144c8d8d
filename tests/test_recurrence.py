from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from recurrence import MAX_LOOKAHEAD_DAYS, next_occurrence, occurs_on, validate_recurrence


def make_event(recurrence_type, due_date, interval=None):
    return SimpleNamespace(recurrence_type=recurrence_type, due_date=due_date, recurrence_interval=interval)


def test_never_occurs_before_due_date():
    for kind, interval in (("one_time", None), ("weekly", None), ("monthly", None), ("custom", 3)):
        event = make_event(kind, date(2024, 6, 10), interval)
        assert not occurs_on(event, date(2024, 6, 9))
        assert occurs_on(event, date(2024, 6, 10))


def test_one_time_only_on_due_date():
    event = make_event("one_time", date(2024, 6, 10))
    assert not occurs_on(event, date(2024, 6, 17))
    assert not occurs_on(event, date(2024, 7, 10))


def test_monthly_matches_day_of_month():
    event = make_event("monthly", date(2024, 1, 15))
    assert occurs_on(event, date(2024, 2, 15))
    assert occurs_on(event, date(2025, 11, 15))
    assert not occurs_on(event, date(2024, 2, 14))


def test_monthly_anchor_31_skips_short_months():
    event = make_event("monthly", date(2024, 1, 31))
    assert next_occurrence(event, date(2024, 4, 1)) == date(2024, 5, 31)
    assert not any(occurs_on(event, date(2024, 4, 1) + timedelta(days=i)) for i in range(30))


def test_weekly_matches_weekday():
    event = make_event("weekly", date(2024, 6, 3))  # Monday
    assert occurs_on(event, date(2024, 6, 10))
    assert occurs_on(event, date(2024, 12, 30))
    assert not occurs_on(event, date(2024, 6, 11))


def test_custom_interval_multiples():
    event = make_event("custom", date(2024, 6, 1), 10)
    assert occurs_on(event, date(2024, 6, 11))
    assert occurs_on(event, date(2024, 7, 1))
    assert not occurs_on(event, date(2024, 6, 12))


@pytest.mark.parametrize("interval", [None, 0, -5])
def test_custom_without_positive_interval_never_occurs(interval):
    event = make_event("custom", date(2024, 6, 1), interval)
    assert not occurs_on(event, date(2024, 6, 1))
    assert next_occurrence(event, date(2024, 6, 1)) is None


def test_unknown_recurrence_is_inert():
    event = make_event("yearly", date(2024, 6, 1))
    assert not occurs_on(event, date(2024, 6, 1))
    assert next_occurrence(event, date(2024, 6, 1)) is None


def test_next_occurrence_one_time():
    event = make_event("one_time", date(2024, 6, 10))
    assert next_occurrence(event, date(2024, 6, 1)) == date(2024, 6, 10)
    assert next_occurrence(event, date(2024, 6, 10)) == date(2024, 6, 10)
    assert next_occurrence(event, date(2024, 6, 11)) is None


def test_next_occurrence_is_on_or_after_start():
    event = make_event("weekly", date(2024, 6, 3))
    assert next_occurrence(event, date(2024, 6, 10)) == date(2024, 6, 10)
    assert next_occurrence(event, date(2024, 6, 11)) == date(2024, 6, 17)


def test_next_occurrence_before_anchor_waits_for_anchor():
    event = make_event("monthly", date(2024, 8, 5))
    assert next_occurrence(event, date(2024, 6, 1)) == date(2024, 8, 5)


def test_next_occurrence_respects_lookahead_bound():
    start = date(2024, 1, 1)
    event = make_event("custom", date(2024, 1, 2), 400)
    assert next_occurrence(event, start) == date(2024, 1, 2)
    assert next_occurrence(event, date(2024, 1, 3)) is None

    far = make_event("monthly", start + timedelta(days=MAX_LOOKAHEAD_DAYS + 10))
    assert next_occurrence(far, start) is None


def test_next_occurrence_accepts_datetimes():
    from datetime import datetime
    event = make_event("weekly", date(2024, 6, 3))
    assert next_occurrence(event, datetime(2024, 6, 9, 23, 30)) == date(2024, 6, 10)


def test_validate_recurrence():
    validate_recurrence("custom", 14)
    validate_recurrence("monthly", None)
    with pytest.raises(ValueError):
        validate_recurrence("custom", None)
    with pytest.raises(ValueError):
        validate_recurrence("custom", 0)
    with pytest.raises(ValueError):
        validate_recurrence("weekly", 7)
    with pytest.raises(ValueError):
        validate_recurrence("daily", None)
