from datetime import datetime

import pytest

from mytor.services.booking_service import BookingService
from mytor.services.memory_store import MemoryBookingRepository, MemoryBusinessDirectory
from mytor.services.slot_service import SlotService
from mytor.services.sync_service import BookingEventBus
from mytor.services.verification_service import VerificationService
from mytor.services.workflow_service import BookingWorkflow
from tests.helpers import FakeClock, RecordingSender, make_profile


@pytest.fixture
def clock():
    return FakeClock(datetime(2030, 1, 1, 8, 0))


@pytest.fixture
def profile():
    return make_profile()


@pytest.fixture
def directory(profile):
    return MemoryBusinessDirectory([profile])


@pytest.fixture
def repo():
    return MemoryBookingRepository()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def verification(sender, clock):
    return VerificationService(
        sender,
        ttl_seconds=300,
        cooldown_seconds=60,
        code_length=4,
        verified_max_age_seconds=300,
        clock=clock,
    )


@pytest.fixture
def events():
    return BookingEventBus()


@pytest.fixture
def slot_service(directory, repo, clock):
    return SlotService(directory, repo, step_minutes=15, clock=clock)


@pytest.fixture
def booking_service(directory, repo, verification, events, clock):
    return BookingService(directory, repo, verification, events=events, clock=clock, edit_margin_hours=1, step_minutes=15)


@pytest.fixture
def workflow(directory, slot_service, verification, booking_service, clock):
    return BookingWorkflow(
        directory,
        slot_service,
        verification,
        booking_service,
        clock=clock,
        retry_attempts=3,
        retry_delay_seconds=0,
    )
