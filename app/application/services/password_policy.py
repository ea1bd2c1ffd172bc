import re
from dataclasses import dataclass
from typing import List, Optional

from passlib.context import CryptContext

from ...exceptions import WeakCredential

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8


def password_failures(password: str) -> List[str]:
    """Return the names of the strength rules ``password`` breaks."""
    failures = []
    if len(password) < MIN_PASSWORD_LENGTH:
        failures.append("min_length")
    if not re.search(r"[A-Z]", password):
        failures.append("uppercase")
    if not re.search(r"[a-z]", password):
        failures.append("lowercase")
    if not re.search(r"\d", password):
        failures.append("digit")
    if not re.search(r"[^A-Za-z0-9]", password):
        failures.append("symbol")
    return failures


@dataclass
class PasswordPolicy:
    enforce_strength: bool = True
    required: bool = False

    def prepare(self, password: Optional[str]) -> Optional[str]:
        """Validate an optional credential chosen during registration and return its hash."""
        if not password:
            if self.required:
                raise WeakCredential(["required"])
            return None
        if self.enforce_strength:
            failures = password_failures(password)
            if failures:
                raise WeakCredential(failures)
        return pwd_context.hash(password)

    def verify(self, password: str, password_hash: Optional[str]) -> bool:
        if not password_hash:
            return False  # OTP-only accounts have no password
        return pwd_context.verify(password, password_hash)
