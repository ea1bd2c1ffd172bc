# app/schemas/auth/auth.py
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any, List
from datetime import date, datetime
import re

ID_NUMBER_LENGTHS = (10, 13, 14, 15, 17)
MOBILE_PATTERN = re.compile(r'^01[3-9]\d{8}$')


def _clean_mobile(v: str) -> str:
    phone_clean = re.sub(r'[\s\-]', '', v or '')
    if phone_clean.startswith('+88'):
        phone_clean = phone_clean[3:]
    if not MOBILE_PATTERN.match(phone_clean):
        raise ValueError('Invalid mobile number. Use an 11 digit number such as 01712345678')
    return phone_clean


class RegisterRequest(BaseModel):
    id_number: str = Field(..., description="NID (10/13/17 digits) or birth certificate number")
    mobile_number: str = Field(..., description="Bangladeshi mobile number, e.g. 01712345678")

    @field_validator('id_number')
    @classmethod
    def validate_id_number(cls, v):
        v = re.sub(r'\s', '', v or '')
        if not v.isdigit() or len(v) not in ID_NUMBER_LENGTHS:
            raise ValueError('ID number must be 10, 13, 14, 15 or 17 digits')
        return v

    @field_validator('mobile_number')
    @classmethod
    def validate_mobile_number(cls, v):
        return _clean_mobile(v)


class LoginRequest(BaseModel):
    mobile_number: str = Field(..., description="Registered mobile number")

    @field_validator('mobile_number')
    @classmethod
    def validate_mobile_number(cls, v):
        return _clean_mobile(v)


class FlowRequest(BaseModel):
    flow_id: str = Field(..., min_length=16, max_length=128)


class VerifyOTPRequest(FlowRequest):
    otp: str = Field(..., description="6 digit code received by SMS")

    @field_validator('otp')
    @classmethod
    def validate_otp(cls, v):
        v = (v or '').strip()
        if not re.match(r'^\d{6}$', v):
            raise ValueError('OTP must be exactly 6 digits')
        return v


class FinalizeRequest(FlowRequest):
    password: Optional[str] = Field(None, max_length=128, description="Optional password; OTP login works without one")


class OTPDispatchData(BaseModel):
    flow_id: str
    is_new_account: bool
    masked_mobile: str
    expires_in: int
    resend_wait_seconds: int
    sms_sent: bool
    demo_otp: Optional[str] = None


class ResendWaitData(BaseModel):
    flow_id: str
    resend_wait_seconds: int
    can_resend: bool


class VerifyOTPData(BaseModel):
    flow_id: str
    stage: str
    is_new_account: bool


class UserData(BaseModel):
    id: str
    full_name_bn: str
    full_name_en: Optional[str] = None
    nid_number: Optional[str] = None
    birth_certificate_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    phone: str
    role: str
    verification_status: str
    completion_percentage: int
    has_password: bool
    last_login: Optional[datetime] = None
    created_at: datetime


class AuthData(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int
    is_new_account: bool
    user: UserData


class MeData(BaseModel):
    user_id: str
    phone: str
    role: str
    token_id: str
    issued_at: datetime
    expires_at: datetime


class APIResponse(BaseModel):
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    code: Optional[str] = None
    errors: Optional[List[Dict[str, Any]]] = None
