import hashlib
import secrets
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database.

    Every datetime column is declared ``DateTime(timezone=False)`` so values
    written and compared in SQL stay naive on every backend.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =========================
# OTP Generation
# =========================
def generate_otp(length: int = 6) -> str:
    """Generate a uniformly random numeric OTP, leading zeros included."""
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def hash_phone_number(phone: str) -> str:
    """Hash phone number for logs (one-way hash)"""
    return hashlib.sha256(phone.encode()).hexdigest()


def mask_phone_number(phone: str) -> str:
    if len(phone) <= 4:
        return "*" * len(phone)
    return "*" * (len(phone) - 4) + phone[-4:]


def generate_flow_id() -> str:
    """Opaque identifier the client echoes back between registration steps"""
    return secrets.token_urlsafe(32)
