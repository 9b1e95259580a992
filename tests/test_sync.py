import pytest
from datetime import datetime, timedelta

from mytor.core.exceptions import NotFoundError
from mytor.models.db_models import Booking, BookingStatus
from mytor.services.sync_service import BookingChangeEvent, BookingEventBus, BookingFeed, ChangeKind
from tests.helpers import MONDAY, TUESDAY

T0 = datetime(2030, 1, 1, 8, 0)


def _booking(booking_id, start, updated_at=T0, **kwargs):
    data = dict(id=booking_id, business_id="b1", date=MONDAY, start_time=start, duration_minutes=30,
                client_name=booking_id, created_at=T0, updated_at=updated_at)
    data.update(kwargs)
    return Booking(**data)


def _event(booking, kind=ChangeKind.UPDATED):
    return BookingChangeEvent(kind=kind, booking=booking, occurred_at=booking.updated_at)


def test_feed_merges_by_id(repo):
    feed = BookingFeed(repo, "b1", MONDAY)

    feed.on_booking_changed(_event(_booking("a", "10:00"), ChangeKind.CREATED))
    feed.on_booking_changed(_event(_booking("b", "09:00"), ChangeKind.CREATED))
    feed.on_booking_changed(_event(_booking("a", "11:00", updated_at=T0 + timedelta(minutes=1))))

    assert [(b.id, b.start_time) for b in feed.bookings()] == [("b", "09:00"), ("a", "11:00")]


def test_feed_ignores_stale_and_foreign_events(repo):
    feed = BookingFeed(repo, "b1", MONDAY)
    feed.on_booking_changed(_event(_booking("a", "10:00", updated_at=T0 + timedelta(minutes=5))))

    # Older version arriving late
    feed.on_booking_changed(_event(_booking("a", "12:00", updated_at=T0)))
    # Another business
    feed.on_booking_changed(_event(_booking("x", "10:00", business_id="b2")))

    assert [(b.id, b.start_time) for b in feed.bookings()] == [("a", "10:00")]


def test_feed_drops_moved_and_deleted(repo):
    feed = BookingFeed(repo, "b1", MONDAY)
    feed.on_booking_changed(_event(_booking("a", "10:00"), ChangeKind.CREATED))
    feed.on_booking_changed(_event(_booking("b", "11:00"), ChangeKind.CREATED))

    feed.on_booking_changed(_event(_booking("a", "10:00", date=TUESDAY, updated_at=T0 + timedelta(minutes=1))))
    feed.on_booking_changed(_event(_booking("b", "11:00"), ChangeKind.DELETED))

    assert feed.bookings() == []


def test_active_bookings_filter(repo):
    feed = BookingFeed(repo, "b1", MONDAY)
    feed.on_booking_changed(_event(_booking("a", "10:00", status=BookingStatus.CANCELLED)))
    feed.on_booking_changed(_event(_booking("b", "11:00", status=BookingStatus.PENDING)))

    assert [b.id for b in feed.active_bookings()] == ["b"]
    assert len(feed.bookings()) == 2


@pytest.mark.asyncio
async def test_resync_replaces_snapshot(repo):
    await repo.create(_booking("fresh", "13:00"))
    feed = BookingFeed(repo, "b1", MONDAY)
    feed.on_booking_changed(_event(_booking("gone", "10:00")))

    await feed.resync()

    assert [b.id for b in feed.bookings()] == ["fresh"]


@pytest.mark.asyncio
async def test_bus_drives_feed_from_booking_service(booking_service, events, repo):
    feed = BookingFeed(repo, "b1", MONDAY)
    unsubscribe = events.subscribe(feed.on_booking_changed)

    booking = await booking_service.create_owner_booking("b1", MONDAY, "10:00", "Dana", service_id="haircut")
    assert [b.id for b in feed.bookings()] == [booking.id]

    await booking_service.reschedule_booking(booking.id, target_date=TUESDAY)
    assert feed.bookings() == []

    unsubscribe()
    await booking_service.create_owner_booking("b1", MONDAY, "12:00", "Noa", service_id="haircut")
    assert feed.bookings() == []


@pytest.mark.asyncio
async def test_day_feed_starts_from_storage_and_follows_bus(booking_service, events, repo):
    first = await booking_service.create_owner_booking("b1", MONDAY, "11:00", "Dana", service_id="haircut")
    await repo.create(_booking("other-day", "10:00", date=TUESDAY))

    feed = await booking_service.day_feed("b1", MONDAY.isoformat())
    assert feed.day == MONDAY
    assert [b.id for b in feed.bookings()] == [first.id]

    events.subscribe(feed.on_booking_changed)
    second = await booking_service.create_owner_booking("b1", MONDAY, "09:00", "Noa", service_id="haircut")
    await booking_service.update_status(first.id, "cancelled")

    assert [b.id for b in feed.bookings()] == [second.id, first.id]
    assert [b.id for b in feed.active_bookings()] == [second.id]


@pytest.mark.asyncio
async def test_day_feed_unknown_business(booking_service):
    with pytest.raises(NotFoundError):
        await booking_service.day_feed("nope", MONDAY)

def test_broken_listener_does_not_break_publish():
    bus = BookingEventBus()
    seen = []

    def broken(event):
        raise RuntimeError("listener bug")

    bus.subscribe(broken)
    bus.subscribe(seen.append)
    bus.publish(_event(_booking("a", "10:00")))

    assert len(seen) == 1
