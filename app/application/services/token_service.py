import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

logger = logging.getLogger(__name__)


@dataclass
class TokenClaims:
    subject_id: str
    phone: str
    role: str
    token_id: str
    issued_at: datetime
    expires_at: datetime


def _aware_utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TokenService:
    secret_key: str
    issuer: str
    audience: str
    expire_minutes: int = 60
    algorithm: str = "HS256"
    clock: Callable[[], datetime] = _aware_utcnow

    @property
    def expires_in(self) -> int:
        return self.expire_minutes * 60

    def issue(self, subject_id: str, phone: str, role: str) -> str:
        """Create a signed access token for an authenticated account"""
        now = self.clock()
        payload = {
            "sub": str(subject_id),
            "phone": phone,
            "role": role,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + timedelta(minutes=self.expire_minutes),
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def validate(self, token: str) -> Optional[TokenClaims]:
        """Verify signature, issuer, audience and expiry. Returns None for any invalid token."""
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                leeway=0,
                options={"require": ["exp", "iat", "sub", "jti", "iss", "aud"], "verify_iat": False},
            )
        except jwt.ExpiredSignatureError:
            logger.info("Token has expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Token validation failed: {e}")
            return None

        return TokenClaims(
            subject_id=payload["sub"],
            phone=payload.get("phone", ""),
            role=payload.get("role", ""),
            token_id=payload["jti"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
