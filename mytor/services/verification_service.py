"""
One-time code verification gating booking commits.

Per phone there is at most one live code: a new send replaces the previous
code, and a successful verify consumes it. A verified phone may then commit
exactly one booking while the verification is fresh.
"""
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from mytor.core.config import settings
from mytor.core.exceptions import CodeMismatchError, ExpiredCodeError, RateLimitError, ValidationError
from mytor.core.logger import logger
from mytor.models.db_models import VerificationCode
from mytor.services.ports import CodeSender

CHANNELS = ("sms", "voice")


class VerificationService:
    def __init__(
        self,
        sender: CodeSender,
        ttl_seconds: int = None,
        cooldown_seconds: int = None,
        code_length: int = None,
        verified_max_age_seconds: int = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.sender = sender
        self.ttl_seconds = ttl_seconds or settings.OTP_TTL_SECONDS
        self.cooldown_seconds = cooldown_seconds or settings.OTP_RESEND_COOLDOWN_SECONDS
        self.code_length = code_length or settings.OTP_CODE_LENGTH
        self.verified_max_age_seconds = verified_max_age_seconds or settings.OTP_VERIFIED_MAX_AGE_SECONDS
        self.clock = clock

        self._codes: Dict[str, VerificationCode] = {}
        self._last_sent: Dict[str, datetime] = {}
        self._verified_at: Dict[str, datetime] = {}

    def _generate_code(self) -> str:
        # Leading digit is never zero so the code keeps its length when read aloud
        low = 10 ** (self.code_length - 1)
        return str(low + secrets.randbelow(9 * low))

    def cooldown_remaining(self, phone: str) -> int:
        last = self._last_sent.get(phone)
        if last is None:
            return 0
        elapsed = (self.clock() - last).total_seconds()
        return max(0, int(self.cooldown_seconds - elapsed + 0.999))

    async def send(self, phone: str, channel: str = "sms") -> None:
        if channel not in CHANNELS:
            raise ValidationError(f"Unknown delivery channel '{channel}'")

        remaining = self.cooldown_remaining(phone)
        if remaining > 0:
            logger.info(f"⏳ Resend for {phone} blocked, {remaining}s of cooldown left")
            raise RateLimitError(f"Please wait {remaining} seconds before requesting a new code", retry_after=remaining)

        code = self._generate_code()
        # Deliver first: a failed delivery leaves the previous code live and starts no cooldown
        await self.sender.send_code(phone, code, channel)

        now = self.clock()
        previous = self._codes.get(phone)
        if previous is not None and not previous.consumed:
            logger.info(f"♻️ Replacing live code for {phone}")
        self._codes[phone] = VerificationCode(
            phone=phone,
            code=code,
            channel=channel,
            issued_at=now,
            ttl_seconds=self.ttl_seconds,
        )
        self._last_sent[phone] = now
        logger.info(f"📨 Verification code sent to {phone} via {channel}")

    def live_code(self, phone: str) -> Optional[VerificationCode]:
        record = self._codes.get(phone)
        if record is None or record.consumed or record.is_expired(self.clock()):
            return None
        return record

    async def verify(self, phone: str, code: str) -> bool:
        record = self._codes.get(phone)
        if record is None or record.consumed:
            raise CodeMismatchError("No active code for this phone, please request a new one")

        if record.is_expired(self.clock()):
            logger.info(f"⌛ Code for {phone} expired")
            raise ExpiredCodeError("The code has expired, please request a new one")

        if not secrets.compare_digest(record.code, (code or "").strip()):
            logger.info(f"❌ Wrong code entered for {phone}")
            raise CodeMismatchError("The code is incorrect")

        self._codes[phone] = record.model_copy(update={"consumed": True})
        self._verified_at[phone] = self.clock()
        logger.info(f"✅ Phone {phone} verified")
        return True

    def is_verified(self, phone: str) -> bool:
        verified_at = self._verified_at.get(phone)
        if verified_at is None:
            return False
        return self.clock() - verified_at <= timedelta(seconds=self.verified_max_age_seconds)

    def consume_verification(self, phone: str) -> None:
        self._verified_at.pop(phone, None)
