from dataclasses import dataclass
from datetime import datetime, date
from typing import Optional, Protocol


@dataclass
class AccountDto:
    id: str
    nid_number: Optional[str]
    birth_certificate_number: Optional[str]
    full_name_bn: str
    full_name_en: Optional[str]
    date_of_birth: Optional[date]
    phone: str
    role: str
    has_password: bool
    verification_status: str
    completion_percentage: int
    last_login: Optional[datetime]
    created_at: datetime

    @property
    def external_id(self) -> Optional[str]:
        return self.nid_number or self.birth_certificate_number


@dataclass
class NewAccount:
    nid_number: Optional[str]
    birth_certificate_number: Optional[str]
    full_name_bn: str
    full_name_en: Optional[str]
    father_name_bn: Optional[str]
    mother_name_bn: Optional[str]
    date_of_birth: Optional[date]
    gender: Optional[str]
    phone: str
    email: Optional[str]
    permanent_address: Optional[str]
    password_hash: Optional[str]
    role: str
    completion_percentage: int
    created_at: datetime


class AccountRepository(Protocol):
    def get_by_id(self, account_id: str) -> Optional[AccountDto]:
        ...

    def get_by_external_id(self, external_id: str) -> Optional[AccountDto]:
        """Match on NID or birth certificate number."""
        ...

    def get_by_external_id_and_phone(self, external_id: str, phone: str) -> Optional[AccountDto]:
        ...

    def get_by_phone(self, phone: str) -> Optional[AccountDto]:
        ...

    def create_or_get(self, account: NewAccount) -> AccountDto:
        """Insert in a single transaction; on an external-id conflict return the existing row."""
        ...

    def record_login(self, account_id: str, at: datetime) -> None:
        ...
