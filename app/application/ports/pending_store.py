from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from .identity_registry import IdentityRecord


class FlowStage(str, Enum):
    IDENTITY_RESOLVED = "IdentityResolved"
    OTP_SENT = "OtpSent"
    OTP_VERIFIED = "OtpVerified"
    FINALIZED = "Finalized"


@dataclass
class PendingRegistration:
    flow_id: str
    phone: str
    is_new_account: bool
    stage: FlowStage
    created_at: datetime
    external_id: Optional[str] = None
    identity: Optional[IdentityRecord] = None
    account_id: Optional[str] = None
    identity_mismatch: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flow_id": self.flow_id,
            "phone": self.phone,
            "is_new_account": self.is_new_account,
            "stage": self.stage.value,
            "created_at": self.created_at.isoformat(),
            "external_id": self.external_id,
            "identity": self.identity.to_dict() if self.identity else None,
            "account_id": self.account_id,
            "identity_mismatch": self.identity_mismatch,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingRegistration":
        identity = data.get("identity")
        return cls(
            flow_id=data["flow_id"],
            phone=data["phone"],
            is_new_account=bool(data["is_new_account"]),
            stage=FlowStage(data["stage"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            external_id=data.get("external_id"),
            identity=IdentityRecord.from_dict(identity) if identity else None,
            account_id=data.get("account_id"),
            identity_mismatch=bool(data.get("identity_mismatch", False)),
        )


class PendingRegistrationStore(Protocol):
    """Server-side pending flows keyed by flow id. Entries vanish after the store's TTL."""

    def save(self, pending: PendingRegistration) -> None:
        ...

    def get(self, flow_id: str) -> Optional[PendingRegistration]:
        ...

    def delete(self, flow_id: str) -> None:
        ...
