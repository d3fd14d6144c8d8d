from datetime import date, datetime, timedelta

from sqlalchemy.exc import OperationalError

from sweeper import Sweeper

NOW = datetime(2024, 7, 1, 12, 0)


def make_sweeper(stores):
    return Sweeper(stores.events, stores.schedules, stores.logs)


def test_inactive_one_time_event_is_removed_with_its_history(stores):
    event = stores.events.add("user-1", "bill", "Insurance", NOW.date() - timedelta(days=30), is_active=False)
    stores.schedules.add(event.id, "09:00:00", days_before=1)
    stores.logs.add("user-1", event.id, NOW - timedelta(days=50), "sent", created_at=NOW - timedelta(days=50))

    report = make_sweeper(stores).sweep(now=NOW)

    assert stores.events.get(event.id) is None
    assert stores.schedules.list_active([event.id]) == []
    assert stores.logs.list_for_event(event.id) == []
    assert report.deleted_events_count == 1
    assert report.deleted_schedules_count == 1
    assert report.deleted_notifications_count == 1
    assert report.deleted_old_notifications_count == 1
    assert report.errors == []
    assert report.success


def test_past_one_time_events_are_deactivated_then_deleted(stores):
    past = stores.events.add("user-1", "bill", "Yesterday", NOW.date() - timedelta(days=1))
    today = stores.events.add("user-1", "bill", "Today", NOW.date())

    report = make_sweeper(stores).sweep(now=NOW)

    assert report.deactivated_count == 1
    assert report.deleted_events_count == 1
    assert stores.events.get(past.id) is None
    assert stores.events.get(today.id).is_active


def test_recurring_events_are_never_deleted(stores):
    event = stores.events.add("user-1", "credit_card", "Card", date(2024, 1, 5),
                              recurrence_type="monthly", is_active=False)
    schedule = stores.schedules.add(event.id, "09:00:00")

    report = make_sweeper(stores).sweep(now=NOW)

    assert report.deleted_events_count == 0
    assert stores.events.get(event.id) is not None
    assert [s.id for s in stores.schedules.list_active([event.id])] == [schedule.id]


def test_orphaned_schedules_are_deleted(stores):
    stores.schedules.add("no-such-event", "09:00:00")
    report = make_sweeper(stores).sweep(now=NOW)
    assert report.deleted_orphaned_schedules_count == 1
    assert stores.schedules.list_active(["no-such-event"]) == []


def test_retention_prunes_old_entries_of_live_events(stores):
    event = stores.events.add("user-1", "bill", "Rent", date(2024, 1, 1), recurrence_type="weekly")
    stores.logs.add("user-1", event.id, NOW - timedelta(days=50), "sent", created_at=NOW - timedelta(days=50))
    stores.logs.add("user-1", event.id, NOW - timedelta(days=10), "sent", created_at=NOW - timedelta(days=10))

    report = make_sweeper(stores).sweep(now=NOW)

    assert report.deleted_old_notifications_count == 1
    assert len(stores.logs.list_for_event(event.id)) == 1


def test_failing_step_does_not_stop_later_steps(stores):
    def broken(today):
        raise OperationalError("UPDATE events", {}, Exception("database is locked"))

    stores.events.deactivate_past_one_time = broken
    stores.schedules.add("no-such-event", "09:00:00")

    report = make_sweeper(stores).sweep(now=NOW)

    assert len(report.errors) == 1
    assert report.errors[0].startswith("Error deactivating events")
    assert report.deleted_orphaned_schedules_count == 1
    assert report.success


def test_events_survive_when_their_history_cannot_be_deleted(stores):
    event = stores.events.add("user-1", "bill", "Insurance", date(2024, 6, 1), is_active=False)

    def broken(event_ids):
        raise OperationalError("DELETE notification_queue", {}, Exception("timeout"))

    stores.logs.delete_for_events = broken
    report = make_sweeper(stores).sweep(now=NOW)

    assert stores.events.get(event.id) is not None
    assert report.deleted_events_count == 0
    assert report.errors[0].startswith("Error deleting notification history")
