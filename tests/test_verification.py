import pytest
from unittest.mock import patch

from mytor.core.exceptions import CodeMismatchError, ExpiredCodeError, RateLimitError, TransientError, ValidationError
from tests.helpers import PHONE


@pytest.mark.asyncio
async def test_resend_cooldown_and_latest_code_wins(verification, sender, clock):
    with patch.object(verification, "_generate_code", side_effect=["1111", "2222"]):
        # 1. First code at T
        await verification.send(PHONE)
        assert sender.last_code() == "1111"

        # 2. T+30s -> blocked, 30 seconds left
        clock.advance(seconds=30)
        with pytest.raises(RateLimitError) as exc:
            await verification.send(PHONE)
        assert exc.value.retry_after == 30

        # 3. T+61s -> new code replaces the first
        clock.advance(seconds=31)
        await verification.send(PHONE)
        assert sender.last_code() == "2222"

    with pytest.raises(CodeMismatchError):
        await verification.verify(PHONE, "1111")
    assert await verification.verify(PHONE, "2222") is True


@pytest.mark.asyncio
async def test_code_expires_after_ttl(verification, sender, clock):
    await verification.send(PHONE)
    code = sender.last_code()

    clock.advance(seconds=300)
    with pytest.raises(ExpiredCodeError):
        await verification.verify(PHONE, code)
    assert verification.live_code(PHONE) is None


@pytest.mark.asyncio
async def test_code_is_single_use(verification, sender):
    await verification.send(PHONE)
    code = sender.last_code()

    assert await verification.verify(PHONE, code) is True
    with pytest.raises(CodeMismatchError):
        await verification.verify(PHONE, code)


@pytest.mark.asyncio
async def test_wrong_code_keeps_code_live(verification, sender):
    with patch.object(verification, "_generate_code", return_value="4321"):
        await verification.send(PHONE)

    with pytest.raises(CodeMismatchError):
        await verification.verify(PHONE, "1234")
    assert verification.live_code(PHONE) is not None
    assert await verification.verify(PHONE, " 4321 ") is True


@pytest.mark.asyncio
async def test_verify_without_code(verification):
    with pytest.raises(CodeMismatchError):
        await verification.verify(PHONE, "1234")


@pytest.mark.asyncio
async def test_failed_delivery_records_nothing(verification, sender):
    sender.failures = 1
    with pytest.raises(TransientError):
        await verification.send(PHONE)

    assert verification.live_code(PHONE) is None
    assert verification.cooldown_remaining(PHONE) == 0

    # Immediate retry is allowed
    await verification.send(PHONE)
    assert len(sender.sent) == 1


@pytest.mark.asyncio
async def test_channels(verification, sender):
    await verification.send(PHONE, "voice")
    assert sender.sent[-1][2] == "voice"

    with pytest.raises(ValidationError):
        await verification.send("0527654321", "carrier-pigeon")


def test_generated_code_shape(verification):
    for _ in range(50):
        code = verification._generate_code()
        assert len(code) == 4
        assert code.isdigit()
        assert code[0] != "0"


@pytest.mark.asyncio
async def test_verified_phone_is_spent_once(verification, sender, clock):
    assert verification.is_verified(PHONE) is False

    await verification.send(PHONE)
    await verification.verify(PHONE, sender.last_code())
    assert verification.is_verified(PHONE) is True

    verification.consume_verification(PHONE)
    assert verification.is_verified(PHONE) is False


@pytest.mark.asyncio
async def test_verification_goes_stale(verification, sender, clock):
    await verification.send(PHONE)
    await verification.verify(PHONE, sender.last_code())

    clock.advance(seconds=301)
    assert verification.is_verified(PHONE) is False
