import logging
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from ...application.ports.sms_sender import SmsSender
from ...utils import mask_phone_number

logger = logging.getLogger(__name__)

OTP_MESSAGE = "Your Thikana verification code is {code}. It expires in {minutes} minutes."


class TwilioSmsSender(SmsSender):
    def __init__(self, account_sid: str, auth_token: str, from_number: str, country_code: str = "+88", expiry_minutes: int = 5, client: Optional[Client] = None):
        self.client = client or Client(account_sid, auth_token)
        self.from_number = from_number
        self.country_code = country_code
        self.expiry_minutes = expiry_minutes

    def _to_e164(self, phone: str) -> str:
        if phone.startswith("+"):
            return phone
        return f"{self.country_code}{phone}"

    def send(self, phone: str, code: str) -> bool:
        if not self.from_number:
            raise RuntimeError("Twilio sender number not configured")
        try:
            message = self.client.messages.create(
                to=self._to_e164(phone),
                from_=self.from_number,
                body=OTP_MESSAGE.format(code=code, minutes=self.expiry_minutes),
            )
        except TwilioRestException as e:
            logger.error(f"Twilio rejected OTP message for {mask_phone_number(phone)}: {e.msg}")
            return False
        logger.info(f"OTP SMS sent to {mask_phone_number(phone)}, sid {message.sid}")
        return True
