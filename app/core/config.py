# app/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic import Field
from pydantic_settings import SettingsConfigDict
from typing import Optional, List
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra='ignore', populate_by_name=True)

    # Application Settings
    APP_NAME: str = "Tenant Verification API"
    APP_VERSION: str = "1.0.0"
    ENV: str = "production"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = int(os.environ.get("PORT", 8000))

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./tenant_verification.db")

    # Security Settings
    SECRET_KEY: str = Field(default="change-me-in-prod", alias="JWT_SECRET_KEY")
    ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "TenantVerificationSystem"
    JWT_AUDIENCE: str = "TenantUsers"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # OTP Settings
    OTP_LENGTH: int = 6
    OTP_EXPIRY_MINUTES: int = 5
    OTP_RESEND_WAIT_SECONDS: int = 60
    # 0 disables the per-phone verification attempt cap
    OTP_MAX_VERIFY_ATTEMPTS: int = 0
    # Echo generated codes in API responses. Ignored when ENV is production.
    OTP_DEMO_ECHO: bool = False

    # Registration flow
    PENDING_REGISTRATION_TTL_MINUTES: int = 30
    ENFORCE_PASSWORD_POLICY: bool = True
    PASSWORD_REQUIRED_ON_REGISTRATION: bool = False
    IDENTITY_MISMATCH_POLICY: str = "warn"  # warn | reject
    DEFAULT_ROLE: str = "Tenant"

    # Identity registry
    IDENTITY_PROVIDER: str = "mock"  # mock | registry
    MOCK_DATA_PATH: str = os.path.join(os.path.dirname(os.path.dirname(__file__)), "infrastructure", "identity", "data")
    IDENTITY_REGISTRY_URL: str = os.environ.get("IDENTITY_REGISTRY_URL", "")
    IDENTITY_REGISTRY_API_KEY: str = os.environ.get("IDENTITY_REGISTRY_API_KEY", "")
    IDENTITY_REGISTRY_TIMEOUT: float = 10.0

    # SMS Settings
    SMS_PROVIDER: str = "mock"  # mock | twilio
    TWILIO_ACCOUNT_SID: str = os.environ.get("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.environ.get("TWILIO_AUTH_TOKEN", "")
    TWILIO_PHONE_NUMBER: str = os.environ.get("TWILIO_PHONE_NUMBER", "")
    SMS_COUNTRY_CODE: str = "+88"

    # CORS Settings
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")
    CORS_ALLOW_CREDENTIALS: bool = True

    # Localization
    DEFAULT_LANGUAGE: str = "bn"

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 60
    MAX_REQUEST_BYTES: int = 64 * 1024
    REDIS_URL: Optional[str] = os.environ.get("REDIS_URL", None)

    # Helper methods for list envs
    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",")]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    @property
    def otp_echo_enabled(self) -> bool:
        return self.OTP_DEMO_ECHO and not self.is_production

@lru_cache()
def get_settings() -> Settings:
    s = Settings()
    # Normalize ALLOWED_ORIGINS if provided as comma-separated string env var CORS_ORIGINS
    cors_env = os.environ.get("CORS_ORIGINS")
    if cors_env:
        s.ALLOWED_ORIGINS = cors_env
    return s

settings: Settings = get_settings()
