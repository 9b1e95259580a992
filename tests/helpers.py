from datetime import date, datetime, timedelta

from mytor.core.exceptions import TransientError
from mytor.models.db_models import BusinessProfile, DateException, ServiceDefinition, TimeWindow
from mytor.services.ports import CodeSender

# 2030-01-07 is a Monday, 2030-01-08 a Tuesday
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
BLOCKED_MONDAY = date(2030, 1, 14)
PHONE = "0501234567"


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingSender(CodeSender):
    """Keeps every delivered code; fails the next `failures` deliveries."""

    def __init__(self):
        self.sent = []
        self.failures = 0

    async def send_code(self, phone: str, code: str, channel: str) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise TransientError("gateway down")
        self.sent.append((phone, code, channel))

    def last_code(self) -> str:
        return self.sent[-1][1]


def make_profile(**overrides) -> BusinessProfile:
    data = dict(
        id="b1",
        slug="salon",
        name="Salon Test",
        owner_email="owner@test.com",
        services=[
            ServiceDefinition(id="haircut", name="Haircut", duration_minutes=30),
            ServiceDefinition(id="color", name="Coloring", duration_minutes=60),
            ServiceDefinition(id="old", name="Retired", duration_minutes=45, active=False),
        ],
        windows=[TimeWindow(weekday=0, start="09:00", end="17:00")],
        exceptions=[DateException(date=BLOCKED_MONDAY, reason="Holiday")],
    )
    data.update(overrides)
    return BusinessProfile(**data)
