from typing import Protocol


class SmsSender(Protocol):
    def send(self, phone: str, code: str) -> bool:
        ...
