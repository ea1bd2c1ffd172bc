import logging
from collections import deque

from ...application.ports.sms_sender import SmsSender
from ...utils import mask_phone_number

logger = logging.getLogger(__name__)


class MockSmsSender(SmsSender):
    """Pretends to deliver; used in development and tests.

    Only the most recent ``history_size`` recipients are kept.
    """

    def __init__(self, history_size: int = 100) -> None:
        self.sent_to = deque(maxlen=history_size)

    def send(self, phone: str, code: str) -> bool:
        self.sent_to.append(phone)
        logger.info(f"[mock sms] OTP message queued for {mask_phone_number(phone)}")
        return True
