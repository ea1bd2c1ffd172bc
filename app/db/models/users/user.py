# app/db/models/users/user.py
from typing import Optional
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime, date
import uuid

from ....utils import utcnow

class User(SQLModel, table=True):
    __tablename__ = "users"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    nid_number: Optional[str] = Field(max_length=20, default=None, unique=True, index=True)
    birth_certificate_number: Optional[str] = Field(max_length=20, default=None, unique=True, index=True)
    full_name_bn: str = Field(max_length=200)
    full_name_en: Optional[str] = Field(max_length=200, default=None)
    father_name_bn: Optional[str] = Field(max_length=200, default=None)
    mother_name_bn: Optional[str] = Field(max_length=200, default=None)
    date_of_birth: Optional[date] = Field(default=None)
    gender: Optional[str] = Field(max_length=10, default=None)
    phone: str = Field(max_length=15, index=True)
    email: Optional[str] = Field(max_length=100, default=None)
    permanent_address: Optional[str] = Field(max_length=500, default=None)
    password_hash: Optional[str] = Field(max_length=255, default=None)
    role: str = Field(max_length=20, default="Tenant")
    is_verified: bool = Field(default=False)
    verification_status: str = Field(max_length=50, default="Pending")
    completion_percentage: int = Field(default=0)
    last_login: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=False))
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=False))
