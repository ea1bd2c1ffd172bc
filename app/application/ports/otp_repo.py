from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol


@dataclass
class OtpRecord:
    id: str
    phone: str
    code: str
    created_at: datetime
    expires_at: datetime
    is_used: bool


class OtpRepository(Protocol):
    def latest_issued_at(self, phone: str) -> Optional[datetime]:
        ...

    def supersede_and_create(
        self,
        phone: str,
        code: str,
        created_at: datetime,
        expires_at: datetime,
        cooldown_cutoff: Optional[datetime] = None,
    ) -> Optional[OtpRecord]:
        """Mark every unused, unexpired code for ``phone`` used and store the new one, atomically.

        Issuance is serialized per phone. When ``cooldown_cutoff`` is given and a code
        for ``phone`` was created after it, nothing is written and None is returned.
        """
        ...

    def consume(self, phone: str, code: str, now: datetime) -> bool:
        """Atomically mark the newest matching live code used. False if none was consumed."""
        ...

    def history(self, phone: str) -> List[OtpRecord]:
        ...
