import asyncio
import re
import smtplib
import requests
import time
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client
from twilio.twiml.voice_response import VoiceResponse

from mytor.core.config import settings
from mytor.core.exceptions import TransientError, ValidationError
from mytor.core.logger import logger
from mytor.models.db_models import Booking, BookingStatus, BusinessProfile
from mytor.services.ports import CodeSender

GOSMS_TOKEN_URL = "https://app.gosms.cz/oauth/v2/token"
GOSMS_MESSAGES_URL = "https://app.gosms.cz/api/v1/messages"

# Cached GoSMS OAuth token
_gosms_token = None
_gosms_token_expires_at = 0

_twilio_client: Optional[Client] = None


def to_international(phone: str) -> str:
    """Local "05XXXXXXXX" -> "+9725XXXXXXXX"; numbers already starting with + are kept."""
    clean = re.sub(r"[\s\-]", "", phone or "")
    if clean.startswith("+"):
        return clean
    if clean.startswith("0"):
        return settings.PHONE_COUNTRY_PREFIX + clean[1:]
    return clean


def _get_twilio_client() -> Optional[Client]:
    global _twilio_client

    if _twilio_client is not None:
        return _twilio_client

    if not settings.TWILIO_ACCOUNT_SID or not settings.TWILIO_AUTH_TOKEN or not settings.TWILIO_PHONE_NUMBER:
        logger.error("❌ Twilio credentials missing (TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN or TWILIO_PHONE_NUMBER).")
        return None

    _twilio_client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
    logger.info("✅ Twilio client initialized")
    return _twilio_client


def _get_gosms_token() -> Optional[str]:
    """
    Retrieves or refreshes the OAuth2 access_token for GoSMS.
    """
    global _gosms_token, _gosms_token_expires_at

    # Reuse while valid (60 s safety buffer)
    if _gosms_token and time.time() < _gosms_token_expires_at - 60:
        return _gosms_token

    if not settings.GOSMS_CLIENT_ID or not settings.GOSMS_CLIENT_SECRET:
        logger.error("❌ GoSMS credentials missing (GOSMS_CLIENT_ID or GOSMS_CLIENT_SECRET).")
        return None

    payload = {
        "client_id": settings.GOSMS_CLIENT_ID,
        "client_secret": settings.GOSMS_CLIENT_SECRET,
        "grant_type": "client_credentials"
    }

    try:
        response = requests.post(GOSMS_TOKEN_URL, data=payload, timeout=10)
        response.raise_for_status()
        data = response.json()

        _gosms_token = data.get("access_token")
        expires_in = data.get("expires_in", 3600)
        _gosms_token_expires_at = time.time() + expires_in

        logger.info(f"🔑 GoSMS token obtained (expires in {expires_in}s)")
        return _gosms_token
    except Exception as e:
        logger.error(f"❌ Failed to get GoSMS token: {e}")
        return None


def _send_sms_gosms(recipient: str, message: str) -> bool:
    if not settings.GOSMS_CHANNEL_ID:
        logger.error("❌ GOSMS_CHANNEL_ID is missing.")
        return False

    token = _get_gosms_token()
    if not token:
        return False

    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json"
    }

    try:
        channel_id = int(settings.GOSMS_CHANNEL_ID)
    except ValueError:
        channel_id = settings.GOSMS_CHANNEL_ID

    payload = {
        "message": message,
        "recipients": [recipient],
        "channel": channel_id
    }

    try:
        logger.info(f"📤 Sending SMS to {recipient} via GoSMS...")
        response = requests.post(GOSMS_MESSAGES_URL, json=payload, headers=headers, timeout=10)

        if response.status_code in (200, 201):
            logger.info(f"✅ SMS sent to {recipient}.")
            return True
        logger.error(f"❌ GoSMS error {response.status_code}: {response.text}")
        return False
    except Exception as e:
        logger.error(f"❌ Exception sending SMS via GoSMS: {e}")
        return False


def _send_sms_twilio(recipient: str, message: str) -> bool:
    client = _get_twilio_client()
    if client is None:
        return False

    try:
        logger.info(f"📤 Sending SMS to {recipient} via Twilio...")
        sent = client.messages.create(body=message, from_=settings.TWILIO_PHONE_NUMBER, to=recipient)
        logger.info(f"✅ SMS sent to {recipient} (sid {sent.sid}).")
        return True
    except TwilioRestException as e:
        logger.error(f"❌ Twilio SMS error {e.status}: {e.msg}")
        return False
    except Exception as e:
        logger.error(f"❌ Exception sending SMS via Twilio: {e}")
        return False


def send_sms(to_number: str, message: str) -> bool:
    """
    Sends an SMS through the configured provider (SMS_PROVIDER: "twilio" or "gosms").
    Returns: True if successful, False otherwise.
    """
    if not settings.SMS_ENABLED:
        logger.info("ℹ️ SMS notifications are disabled.")
        return False

    recipient = to_international(to_number)
    if settings.SMS_PROVIDER.lower() == "gosms":
        return _send_sms_gosms(recipient, message)
    return _send_sms_twilio(recipient, message)


def place_voice_call(to_number: str, spoken_text: str) -> bool:
    """
    Reads `spoken_text` to the recipient (twice) through a Twilio voice call.
    Returns: True if the call was queued, False otherwise.
    """
    if not settings.VOICE_ENABLED:
        logger.info("ℹ️ Voice calls are disabled.")
        return False

    client = _get_twilio_client()
    if client is None:
        return False

    recipient = to_international(to_number)
    response = VoiceResponse()
    response.say(spoken_text, language=settings.VOICE_LANGUAGE)
    response.pause(length=2)
    response.say(spoken_text, language=settings.VOICE_LANGUAGE)

    try:
        logger.info(f"📞 Calling {recipient} via Twilio...")
        call = client.calls.create(twiml=str(response), from_=settings.TWILIO_PHONE_NUMBER, to=recipient)
        logger.info(f"✅ Voice call queued for {recipient} (sid {call.sid}).")
        return True
    except TwilioRestException as e:
        logger.error(f"❌ Twilio call error {e.status}: {e.msg}")
        return False
    except Exception as e:
        logger.error(f"❌ Exception placing Twilio call: {e}")
        return False


def send_email(subject: str, body: str, to_email: str) -> bool:
    """
    Sends an email over SMTP (e.g. Gmail).
    Returns: True if successful, False otherwise.
    """
    if not settings.EMAIL_ENABLED:
        logger.info("ℹ️ Email notifications are disabled.")
        return False

    if not to_email:
        logger.error("❌ No recipient email (owner_email missing on business).")
        return False

    if not settings.SMTP_USERNAME or not settings.SMTP_PASSWORD:
        logger.error("❌ SMTP credentials missing.")
        return False

    try:
        msg = MIMEMultipart()
        msg['From'] = settings.SMTP_USERNAME
        msg['To'] = to_email
        msg['Subject'] = subject
        msg.attach(MIMEText(body, 'plain'))

        server = smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT)
        server.starttls()
        server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.sendmail(settings.SMTP_USERNAME, to_email, msg.as_string())
        server.quit()

        logger.info(f"✅ Email sent to {to_email} with subject: '{subject}'")
        return True
    except Exception as e:
        logger.error(f"❌ Error sending email: {e}")
        return False


def notify_owner_new_request(business: BusinessProfile, booking: Booking) -> bool:
    subject = f"New booking request: {booking.client_name}, {booking.date:%d.%m.%Y} {booking.start_time}"
    lines = [
        f"New booking request for {business.name or business.slug}!",
        "",
        f"Client: {booking.client_name}",
        f"Phone: {booking.client_phone}",
        f"Date: {booking.date:%d.%m.%Y}",
        f"Time: {booking.start_time}-{booking.end_time}",
    ]
    if booking.note:
        lines.append(f"Note: {booking.note}")
    lines += ["", "Open the dashboard to confirm or decline:", f"{settings.PUBLIC_BASE_URL}/dashboard/business/{business.id}"]
    return send_email(subject, "\n".join(lines), business.owner_email)


def notify_client_status(business: BusinessProfile, booking: Booking) -> bool:
    name = business.name or business.slug
    if booking.status == BookingStatus.CONFIRMED:
        message = f"Your booking at {name} on {booking.date:%d.%m.%Y} at {booking.start_time} is confirmed."
    elif booking.status == BookingStatus.DECLINED:
        message = f"Sorry, {name} could not accept your booking on {booking.date:%d.%m.%Y} at {booking.start_time}."
    else:
        return False
    return send_sms(booking.client_phone, message)


class NotificationCodeSender(CodeSender):
    """
    Delivers one-time codes by SMS or voice call.
    With the channel switched off, development environments get the code in the log
    and production refuses the send, so no code is stored and no cooldown starts.
    """

    def _deliver_disabled(self, phone: str, code: str, channel: str) -> None:
        if settings.ENVIRONMENT.lower() == "production":
            logger.error(f"❌ {channel} delivery is disabled; code for {phone} was not sent")
            raise ValidationError(f"Delivery by {channel} is not available, please choose another method")
        logger.warning(f"⚠️ {channel} delivery disabled ({settings.ENVIRONMENT}); code for {phone} is {code}")

    async def send_code(self, phone: str, code: str, channel: str) -> None:
        if channel == "voice":
            if not settings.VOICE_ENABLED:
                return self._deliver_disabled(phone, code, channel)
            spoken = ", ".join(code)
            delivered = await asyncio.to_thread(place_voice_call, phone, f"Your verification code is: {spoken}")
        else:
            if not settings.SMS_ENABLED:
                return self._deliver_disabled(phone, code, channel)
            delivered = await asyncio.to_thread(send_sms, phone, f"Your MyTor verification code is: {code}")

        if not delivered:
            raise TransientError("Could not deliver the verification code, please try again")
