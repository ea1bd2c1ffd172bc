import logging
from functools import lru_cache

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from .config import settings
from ..database import get_session
from ..exceptions import Forbidden, InvalidToken
from ..application.ports.audit_logger import AuditLogger
from ..application.ports.identity_registry import IdentityRegistry
from ..application.ports.pending_store import PendingRegistrationStore
from ..application.ports.rate_limiter import RateLimiter
from ..application.ports.sms_sender import SmsSender
from ..application.services.otp_service import OTPService
from ..application.services.password_policy import PasswordPolicy
from ..application.services.registration_service import RegistrationService
from ..application.services.token_service import TokenClaims, TokenService
from ..infrastructure.audit.std_logger import StdAuditLogger
from ..infrastructure.identity.mock_registry import MockIdentityRegistry
from ..infrastructure.identity.remote_registry import RemoteIdentityRegistry
from ..infrastructure.pending.memory_pending_store import InMemoryPendingStore
from ..infrastructure.pending.redis_pending_store import RedisPendingStore
from ..infrastructure.persistence.sqlalchemy.repositories.account_repository_sql import SqlAccountRepository
from ..infrastructure.persistence.sqlalchemy.repositories.otp_repository_sql import SqlOtpRepository
from ..infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from ..infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter
from ..infrastructure.sms.mock_sender import MockSmsSender
from ..infrastructure.sms.twilio_sender import TwilioSmsSender

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# ------------------------
# Process-wide collaborators
# ------------------------
@lru_cache()
def get_identity_registry() -> IdentityRegistry:
    if settings.IDENTITY_PROVIDER == "registry":
        if not settings.IDENTITY_REGISTRY_URL:
            raise RuntimeError("IDENTITY_REGISTRY_URL is required when IDENTITY_PROVIDER=registry")
        return RemoteIdentityRegistry(
            settings.IDENTITY_REGISTRY_URL,
            api_key=settings.IDENTITY_REGISTRY_API_KEY,
            timeout=settings.IDENTITY_REGISTRY_TIMEOUT,
        )
    return MockIdentityRegistry(settings.MOCK_DATA_PATH)


@lru_cache()
def get_sms_sender() -> SmsSender:
    if settings.SMS_PROVIDER == "twilio":
        return TwilioSmsSender(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_PHONE_NUMBER,
            country_code=settings.SMS_COUNTRY_CODE,
            expiry_minutes=settings.OTP_EXPIRY_MINUTES,
        )
    return MockSmsSender()


@lru_cache()
def get_pending_store() -> PendingRegistrationStore:
    if settings.REDIS_URL:
        return RedisPendingStore(settings.REDIS_URL, ttl_minutes=settings.PENDING_REGISTRATION_TTL_MINUTES)
    return InMemoryPendingStore(ttl_minutes=settings.PENDING_REGISTRATION_TTL_MINUTES)


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    if settings.REDIS_URL:
        return RedisRateLimiter(settings.REDIS_URL)
    return InMemoryRateLimiter()


@lru_cache()
def get_audit_logger() -> AuditLogger:
    return StdAuditLogger()


@lru_cache()
def get_token_service() -> TokenService:
    return TokenService(
        secret_key=settings.SECRET_KEY,
        issuer=settings.JWT_ISSUER,
        audience=settings.JWT_AUDIENCE,
        expire_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
        algorithm=settings.ALGORITHM,
    )


# ------------------------
# Per-request services
# ------------------------
def get_otp_service(session: Session = Depends(get_session)) -> OTPService:
    return OTPService(
        otp_repo=SqlOtpRepository(session),
        sms_sender=get_sms_sender(),
        expiry_minutes=settings.OTP_EXPIRY_MINUTES,
        resend_wait_seconds_window=settings.OTP_RESEND_WAIT_SECONDS,
        code_length=settings.OTP_LENGTH,
        max_verify_attempts=settings.OTP_MAX_VERIFY_ATTEMPTS,
        attempt_limiter=get_rate_limiter(),
    )


def get_registration_service(
    session: Session = Depends(get_session),
    otp_service: OTPService = Depends(get_otp_service),
) -> RegistrationService:
    return RegistrationService(
        identity_registry=get_identity_registry(),
        account_repo=SqlAccountRepository(session),
        otp_service=otp_service,
        token_service=get_token_service(),
        pending_store=get_pending_store(),
        password_policy=PasswordPolicy(
            enforce_strength=settings.ENFORCE_PASSWORD_POLICY,
            required=settings.PASSWORD_REQUIRED_ON_REGISTRATION,
        ),
        audit=get_audit_logger(),
        mismatch_policy=settings.IDENTITY_MISMATCH_POLICY,
        default_role=settings.DEFAULT_ROLE,
        echo_otp=settings.otp_echo_enabled,
    )


# ------------------------
# Bearer authentication
# ------------------------
def get_current_claims(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    token_service: TokenService = Depends(get_token_service),
) -> TokenClaims:
    token = credentials.credentials if credentials and credentials.credentials else request.cookies.get("access_token")
    if not token:
        raise InvalidToken("missing bearer token")
    claims = token_service.validate(token)
    if claims is None:
        raise InvalidToken("token rejected")
    return claims


def require_role(*roles: str):
    def checker(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
        if claims.role not in roles:
            logger.warning(f"Role {claims.role} denied for subject {claims.subject_id}")
            raise Forbidden()
        return claims
    return checker
