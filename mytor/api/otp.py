from fastapi import APIRouter, Depends

from mytor.api.deps import get_verification_service
from mytor.core.security import rate_limit_public
from mytor.models.api_models import OtpSendRequest, OtpVerifyRequest
from mytor.services.validators import validate_phone
from mytor.services.verification_service import VerificationService

router = APIRouter(prefix="/otp", tags=["OTP"], dependencies=[Depends(rate_limit_public)])


@router.post("/send")
async def send_code(req: OtpSendRequest, verification: VerificationService = Depends(get_verification_service)):
    phone = validate_phone(req.phone)
    await verification.send(phone, req.channel)
    return {
        "message": "Verification code sent",
        "channel": req.channel,
        "retry_after": verification.cooldown_seconds,
    }


@router.post("/verify")
async def verify_code(req: OtpVerifyRequest, verification: VerificationService = Depends(get_verification_service)):
    phone = validate_phone(req.phone)
    verified = await verification.verify(phone, req.code)
    return {"verified": verified, "phone": phone}
