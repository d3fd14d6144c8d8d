import datetime

import pytest

from config import Settings
from database import init_db, make_engine, make_session_factory
from stores import Stores


class FakeSender:
    """Stands in for the push gateway; answers every message with ``ticket_for``."""

    def __init__(self, ticket_for=None, error=None):
        self.batches = []
        self.ticket_for = ticket_for or (lambda i, message: {"status": "ok", "id": f"receipt-{i}"})
        self.error = error

    async def send(self, messages):
        self.batches.append(list(messages))
        if self.error is not None:
            raise self.error
        return [self.ticket_for(i, message) for i, message in enumerate(messages)]


@pytest.fixture
def stores():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield Stores.from_session_factory(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://")


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def weekly_bill(stores):
    event = stores.events.add(
        "user-1", "bill", "Rent", datetime.date(2024, 6, 3), recurrence_type="weekly",
        description="Transfer to landlord",
    )
    schedule = stores.schedules.add(event.id, "08:00:00", days_before=1)
    return event, schedule
