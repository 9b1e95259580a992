from functools import lru_cache

from mytor.core.config import settings
from mytor.core.config_loader import load_business_profiles
from mytor.core.logger import logger
from mytor.services.booking_service import BookingService
from mytor.services.db_service import SupabaseBookingRepository, SupabaseBusinessDirectory
from mytor.services.memory_store import MemoryBookingRepository, MemoryBusinessDirectory
from mytor.services.notification_service import NotificationCodeSender
from mytor.services.ports import BookingRepository, BusinessDirectory, CodeSender
from mytor.services.slot_service import SlotService
from mytor.services.sync_service import BookingEventBus
from mytor.services.verification_service import VerificationService
from mytor.services.workflow_service import BookingWorkflow


def _use_supabase() -> bool:
    return settings.STORE_PROVIDER.lower() == "supabase"


@lru_cache
def get_business_directory() -> BusinessDirectory:
    if _use_supabase():
        logger.info("🗄️ Business directory: Supabase")
        return SupabaseBusinessDirectory()
    logger.info(f"🗄️ Business directory: in-memory ({settings.BUSINESS_CONFIG_PATH})")
    return MemoryBusinessDirectory(load_business_profiles())


@lru_cache
def get_booking_repository() -> BookingRepository:
    if _use_supabase():
        return SupabaseBookingRepository()
    return MemoryBookingRepository()


@lru_cache
def get_code_sender() -> CodeSender:
    return NotificationCodeSender()


@lru_cache
def get_event_bus() -> BookingEventBus:
    return BookingEventBus()


@lru_cache
def get_verification_service() -> VerificationService:
    return VerificationService(get_code_sender())


@lru_cache
def get_slot_service() -> SlotService:
    return SlotService(get_business_directory(), get_booking_repository())


@lru_cache
def get_booking_service() -> BookingService:
    return BookingService(
        get_business_directory(),
        get_booking_repository(),
        get_verification_service(),
        events=get_event_bus(),
    )


@lru_cache
def get_workflow() -> BookingWorkflow:
    return BookingWorkflow(
        get_business_directory(),
        get_slot_service(),
        get_verification_service(),
        get_booking_service(),
    )
