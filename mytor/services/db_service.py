from datetime import date, datetime
from typing import Iterable, List, Optional

from supabase import AsyncClient, create_async_client

from mytor.core.config import settings
from mytor.core.exceptions import NotFoundError, TransientError
from mytor.core.logger import logger
from mytor.models.db_models import (
    Booking,
    BookingStatus,
    BusinessProfile,
    DateException,
    ServiceDefinition,
    TimeWindow,
)
from mytor.services.ports import BookingRepository, BusinessDirectory


def weekday_from_db(day_of_week: int) -> int:
    """Stored day_of_week counts from Sunday = 0; profiles use Monday = 0."""
    return (int(day_of_week) - 1) % 7


def booking_from_row(row: dict) -> Booking:
    return Booking(
        id=str(row["id"]),
        business_id=str(row["business_id"]),
        service_id=str(row["service_id"]) if row.get("service_id") else None,
        date=row["date"],
        start_time=row["time"],
        duration_minutes=row["duration_minutes"],
        status=row.get("status") or BookingStatus.PENDING,
        client_name=row.get("client_name") or "",
        client_phone=row.get("client_phone") or "",
        note=row.get("note"),
        client_verified=bool(row.get("client_verified")),
        created_at=row.get("created_at") or datetime.now(),
        updated_at=row.get("updated_at") or row.get("created_at") or datetime.now(),
    )


def booking_to_row(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "business_id": booking.business_id,
        "service_id": booking.service_id,
        "date": booking.date.isoformat(),
        "time": booking.start_time,
        "duration_minutes": booking.duration_minutes,
        "status": booking.status.value,
        "client_name": booking.client_name,
        "client_phone": booking.client_phone,
        "note": booking.note,
        "client_verified": booking.client_verified,
        "created_at": booking.created_at.isoformat(),
        "updated_at": booking.updated_at.isoformat(),
    }


class DBService:
    _instance = None
    _client: AsyncClient = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(DBService, cls).__new__(cls)
        return cls._instance

    async def get_client(self) -> AsyncClient:
        if not self._client:
            if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
                logger.error("❌ Supabase credentials missing (SUPABASE_URL or SUPABASE_KEY)")
                raise TransientError("Storage is not available")
            try:
                self._client = await create_async_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
                logger.info("✅ Supabase Async client initialized")
            except Exception as e:
                logger.error(f"❌ Failed to initialize Supabase Async: {e}")
                raise TransientError("Storage is not available")
        return self._client

    async def select(self, table: str, label: str, **filters) -> List[dict]:
        """Runs `select *` with equality filters; client/network failures become TransientError."""
        client = await self.get_client()
        try:
            query = client.table(table).select("*")
            for column, value in filters.items():
                query = query.eq(column, value)
            response = await query.execute()
            return response.data or []
        except Exception as e:
            logger.error(f"❌ DB Error ({label}): {e}")
            raise TransientError("Storage is temporarily unavailable")

    async def insert(self, table: str, row: dict, label: str) -> dict:
        client = await self.get_client()
        try:
            response = await client.table(table).insert(row).execute()
        except Exception as e:
            logger.error(f"❌ DB Error ({label}): {e}")
            raise TransientError("Storage is temporarily unavailable")
        if not response.data:
            raise TransientError("Storage did not confirm the write")
        return response.data[0]

    async def update(self, table: str, row_id: str, values: dict, label: str) -> Optional[dict]:
        client = await self.get_client()
        try:
            response = await client.table(table).update(values).eq("id", row_id).execute()
        except Exception as e:
            logger.error(f"❌ DB Error ({label}): {e}")
            raise TransientError("Storage is temporarily unavailable")
        return response.data[0] if response.data else None


db_service = DBService()


class SupabaseBusinessDirectory(BusinessDirectory):
    def __init__(self, db: DBService = None):
        self.db = db or db_service

    async def _load(self, business: dict) -> BusinessProfile:
        business_id = business["id"]
        services = await self.db.select("services", "services", business_id=business_id)
        windows = await self.db.select("availability", "availability", business_id=business_id)
        blocked = await self.db.select("unavailable_dates", "unavailable_dates", business_id=business_id)

        return BusinessProfile(
            id=str(business_id),
            slug=business["slug"],
            name=business.get("name") or "",
            owner_email=business.get("owner_email"),
            is_active=business.get("is_active", True),
            services=[
                ServiceDefinition(
                    id=str(s["id"]),
                    name=s.get("name") or "",
                    duration_minutes=s["duration_minutes"],
                    active=s.get("is_active", True),
                )
                for s in services
            ],
            windows=[
                TimeWindow(
                    weekday=weekday_from_db(w["day_of_week"]),
                    start=w["start_time"],
                    end=w["end_time"],
                    active=w.get("is_active", True),
                )
                for w in windows
            ],
            exceptions=[DateException(date=d["date"], reason=d.get("reason")) for d in blocked],
        )

    async def get_by_slug(self, slug: str) -> BusinessProfile:
        rows = await self.db.select("businesses", "get_by_slug", slug=slug, is_active=True)
        if not rows:
            raise NotFoundError("Business not found")
        return await self._load(rows[0])

    async def get_by_id(self, business_id: str) -> BusinessProfile:
        rows = await self.db.select("businesses", "get_by_id", id=business_id)
        if not rows:
            raise NotFoundError("Business not found")
        return await self._load(rows[0])


class SupabaseBookingRepository(BookingRepository):
    TABLE = "appointments"

    def __init__(self, db: DBService = None):
        self.db = db or db_service

    async def get(self, booking_id: str) -> Booking:
        rows = await self.db.select(self.TABLE, "get_booking", id=booking_id)
        if not rows:
            raise NotFoundError("Booking not found")
        return booking_from_row(rows[0])

    async def list_for_date(
        self,
        business_id: str,
        target_date: date,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        rows = await self.db.select(self.TABLE, "list_for_date", business_id=business_id, date=target_date.isoformat())
        bookings = [booking_from_row(r) for r in rows]
        if statuses is not None:
            wanted = set(statuses)
            bookings = [b for b in bookings if b.status in wanted]
        return sorted(bookings, key=lambda b: (b.start_minutes, b.created_at))

    async def create(self, booking: Booking) -> Booking:
        row = await self.db.insert(self.TABLE, booking_to_row(booking), "create_booking")
        logger.info(f"💾 Booking {row['id']} stored")
        return booking_from_row(row)

    async def update(self, booking: Booking) -> Booking:
        values = booking_to_row(booking)
        values.pop("id")
        row = await self.db.update(self.TABLE, booking.id, values, "update_booking")
        if row is None:
            raise NotFoundError("Booking not found")
        return booking_from_row(row)
