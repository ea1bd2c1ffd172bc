import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..ports.otp_repo import OtpRepository
from ..ports.sms_sender import SmsSender
from ..ports.rate_limiter import RateLimiter
from ...exceptions import RateLimited
from ...utils import generate_otp, mask_phone_number, utcnow

logger = logging.getLogger(__name__)


@dataclass
class IssuedOtp:
    code: str
    expires_at: datetime
    dispatched: bool


@dataclass
class OTPService:
    """Issues, rate limits and verifies one-time passcodes for a phone number.

    At most one code per phone is usable at any time: issuing a new code marks
    every earlier live code used. Codes are single-use and consumed with a
    conditional update so two concurrent verifications cannot both succeed.
    """

    otp_repo: OtpRepository
    sms_sender: SmsSender
    expiry_minutes: int = 5
    resend_wait_seconds_window: int = 60
    code_length: int = 6
    max_verify_attempts: int = 0
    attempt_limiter: Optional[RateLimiter] = None
    clock: Callable[[], datetime] = utcnow
    code_factory: Optional[Callable[[], str]] = None

    def resend_wait_seconds(self, phone: str) -> int:
        last_issued = self.otp_repo.latest_issued_at(phone)
        if last_issued is None:
            return 0
        remaining = self.resend_wait_seconds_window - (self.clock() - last_issued).total_seconds()
        # Rounded up: any fraction of the window left still blocks a new code
        return max(0, math.ceil(remaining))

    def issue(self, phone: str) -> IssuedOtp:
        wait = self.resend_wait_seconds(phone)
        if wait > 0:
            logger.info(f"OTP request for {mask_phone_number(phone)} rate limited, retry in {wait}s")
            raise RateLimited(wait)

        code = self.code_factory() if self.code_factory else generate_otp(self.code_length)
        now = self.clock()
        record = self.otp_repo.supersede_and_create(
            phone=phone,
            code=code,
            created_at=now,
            expires_at=now + timedelta(minutes=self.expiry_minutes),
            cooldown_cutoff=now - timedelta(seconds=self.resend_wait_seconds_window),
        )
        if record is None:
            wait = max(1, self.resend_wait_seconds(phone))
            logger.info(f"Concurrent OTP request for {mask_phone_number(phone)} lost the race, retry in {wait}s")
            raise RateLimited(wait)
        if self.attempt_limiter is not None:
            self.attempt_limiter.reset(self._attempt_key(phone))
        logger.info(f"OTP generated for {mask_phone_number(phone)}, expires at {record.expires_at.isoformat()}")

        return IssuedOtp(code=record.code, expires_at=record.expires_at, dispatched=self._dispatch(phone, record.code))

    def verify(self, phone: str, code: str) -> bool:
        if self.max_verify_attempts > 0 and self.attempt_limiter is not None:
            window = self.expiry_minutes * 60
            if not self.attempt_limiter.allow(self._attempt_key(phone), self.max_verify_attempts, window):
                logger.warning(f"OTP verification attempts exhausted for {mask_phone_number(phone)}")
                raise RateLimited(self.resend_wait_seconds(phone))

        if not code or not code.isdigit() or len(code) != self.code_length:
            return False

        consumed = self.otp_repo.consume(phone, code, self.clock())
        if consumed:
            logger.info(f"OTP verified for {mask_phone_number(phone)}")
        else:
            logger.warning(f"Invalid or expired OTP for {mask_phone_number(phone)}")
        return consumed

    def _dispatch(self, phone: str, code: str) -> bool:
        # The stored code stays valid whatever happens here
        try:
            sent = self.sms_sender.send(phone, code)
        except Exception as e:
            logger.error(f"OTP SMS dispatch failed for {mask_phone_number(phone)}: {e}")
            return False
        if not sent:
            logger.warning(f"OTP SMS dispatch reported failure for {mask_phone_number(phone)}")
        return bool(sent)

    @staticmethod
    def _attempt_key(phone: str) -> str:
        return f"otp-verify:{phone}"
