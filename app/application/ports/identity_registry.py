from dataclasses import dataclass, asdict
from datetime import date
from typing import Any, Dict, Optional, Protocol


@dataclass
class IdentityRecord:
    nid_number: Optional[str]
    birth_certificate_number: Optional[str]
    full_name_bn: str
    full_name_en: Optional[str]
    father_name_bn: Optional[str]
    mother_name_bn: Optional[str]
    date_of_birth: Optional[date]
    gender: Optional[str]
    mobile_number: Optional[str]
    email: Optional[str]
    permanent_address: Optional[str]

    @property
    def external_id(self) -> Optional[str]:
        return self.nid_number or self.birth_certificate_number

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date_of_birth"] = self.date_of_birth.isoformat() if self.date_of_birth else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IdentityRecord":
        dob = data.get("date_of_birth")
        if isinstance(dob, str) and dob:
            dob = date.fromisoformat(dob[:10])
        return cls(
            nid_number=data.get("nid_number"),
            birth_certificate_number=data.get("birth_certificate_number"),
            full_name_bn=data.get("full_name_bn") or "",
            full_name_en=data.get("full_name_en"),
            father_name_bn=data.get("father_name_bn"),
            mother_name_bn=data.get("mother_name_bn"),
            date_of_birth=dob or None,
            gender=data.get("gender"),
            mobile_number=data.get("mobile_number"),
            email=data.get("email"),
            permanent_address=data.get("permanent_address"),
        )


class IdentityRegistry(Protocol):
    def resolve(self, external_id: str) -> Optional[IdentityRecord]:
        ...

    def cross_check(self, phone: str, external_id: str) -> bool:
        ...
