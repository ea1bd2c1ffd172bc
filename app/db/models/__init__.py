# Models package (re-export feature modules for stable imports)
from .users.user import User
from .auth.otp import OTPCode

__all__ = [
    "User",
    "OTPCode",
]
