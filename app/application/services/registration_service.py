import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..ports.account_repo import AccountDto, AccountRepository, NewAccount
from ..ports.audit_logger import AuditLogger
from ..ports.identity_registry import IdentityRecord, IdentityRegistry
from ..ports.pending_store import FlowStage, PendingRegistration, PendingRegistrationStore
from .otp_service import OTPService
from .password_policy import PasswordPolicy
from .token_service import TokenService
from ...exceptions import (
    AccountNotFound,
    FlowExpired,
    IdentityMismatch,
    IdentityNotFound,
    InvalidFlowState,
    InvalidOrExpiredOtp,
    RateLimited,
)
from ...utils import generate_flow_id, mask_phone_number, utcnow

logger = logging.getLogger(__name__)

# Profile sections scored by the dashboard; the first five come from the identity record
PROFILE_SECTION_COUNT = 15

MISMATCH_WARN = "warn"
MISMATCH_REJECT = "reject"


def initial_completion_score(identity: IdentityRecord, phone: str) -> int:
    basic_fields = [
        identity.full_name_bn,
        identity.father_name_bn,
        phone,
        identity.permanent_address,
        identity.date_of_birth,
    ]
    filled = sum(1 for value in basic_fields if value)
    return (filled * 100) // PROFILE_SECTION_COUNT


@dataclass
class OtpDispatch:
    flow_id: str
    expires_in: int
    resend_wait_seconds: int
    dispatched: bool
    demo_code: Optional[str] = None


@dataclass
class AuthResult:
    account: AccountDto
    token: str
    expires_in: int
    is_new_account: bool


@dataclass
class RegistrationService:
    """Drives a registration or login attempt from identity submission to a session token.

    Stages: IdentityResolved -> OtpSent -> OtpVerified -> Finalized. A flow whose
    pending entry has expired in the store, or was cancelled, is abandoned and
    every later step answers FlowExpired. Domain rejections leave the flow at
    the stage it was in so the caller can retry.
    """

    identity_registry: IdentityRegistry
    account_repo: AccountRepository
    otp_service: OTPService
    token_service: TokenService
    pending_store: PendingRegistrationStore
    password_policy: PasswordPolicy
    audit: Optional[AuditLogger] = None
    mismatch_policy: str = MISMATCH_WARN
    default_role: str = "Tenant"
    echo_otp: bool = False
    clock: Callable[[], datetime] = utcnow

    # ------------------------
    # Start -> IdentityResolved
    # ------------------------
    def begin(self, external_id: str, phone: str) -> PendingRegistration:
        identity = self.identity_registry.resolve(external_id)
        if identity is None:
            self._audit("IDENTITY_NOT_FOUND", phone, success=False)
            raise IdentityNotFound()

        mismatch = not self.identity_registry.cross_check(phone, external_id)
        if mismatch:
            self._audit("IDENTITY_MISMATCH", phone, success=False, details={"policy": self.mismatch_policy})
            if self.mismatch_policy == MISMATCH_REJECT:
                raise IdentityMismatch()
            logger.warning(f"Mobile {mask_phone_number(phone)} does not match identity record, continuing by policy")

        canonical_id = identity.external_id or external_id
        account = self.account_repo.get_by_external_id_and_phone(canonical_id, phone)
        if account is None:
            registered = self.account_repo.get_by_external_id(canonical_id)
            if registered is not None:
                # The identity already belongs to an account bound to another phone
                self._audit("IDENTITY_PHONE_CONFLICT", phone, registered.id, success=False)
                raise IdentityMismatch()

        pending = PendingRegistration(
            flow_id=generate_flow_id(),
            phone=phone,
            is_new_account=account is None,
            stage=FlowStage.IDENTITY_RESOLVED,
            created_at=self.clock(),
            external_id=canonical_id,
            identity=identity,
            account_id=account.id if account else None,
            identity_mismatch=mismatch,
        )
        self.pending_store.save(pending)
        logger.info(f"Flow started for {mask_phone_number(phone)} ({'registration' if pending.is_new_account else 'login'})")
        return pending

    def begin_login(self, phone: str) -> PendingRegistration:
        account = self.account_repo.get_by_phone(phone)
        if account is None:
            self._audit("LOGIN_UNKNOWN_PHONE", phone, success=False)
            raise AccountNotFound()

        pending = PendingRegistration(
            flow_id=generate_flow_id(),
            phone=phone,
            is_new_account=False,
            stage=FlowStage.IDENTITY_RESOLVED,
            created_at=self.clock(),
            external_id=account.external_id,
            account_id=account.id,
        )
        self.pending_store.save(pending)
        return pending

    # ------------------------
    # IdentityResolved -> OtpSent
    # ------------------------
    def request_otp(self, flow_id: str) -> OtpDispatch:
        pending = self.get(flow_id)
        self._require_stage(pending, FlowStage.IDENTITY_RESOLVED, FlowStage.OTP_SENT)

        try:
            issued = self.otp_service.issue(pending.phone)
        except RateLimited as exc:
            # The stage is untouched; the flow can be retried once the wait is over
            exc.flow_id = flow_id
            raise

        pending.stage = FlowStage.OTP_SENT
        self.pending_store.save(pending)
        self._audit("OTP_ISSUED", pending.phone, pending.account_id, details={"dispatched": issued.dispatched})

        expires_in = max(0, int((issued.expires_at - self.clock()).total_seconds()))
        return OtpDispatch(
            flow_id=flow_id,
            expires_in=expires_in,
            resend_wait_seconds=self.otp_service.resend_wait_seconds(pending.phone),
            dispatched=issued.dispatched,
            demo_code=issued.code if self.echo_otp else None,
        )

    def resend_wait_seconds(self, flow_id: str) -> int:
        pending = self.get(flow_id)
        return self.otp_service.resend_wait_seconds(pending.phone)

    # ------------------------
    # OtpSent -> OtpVerified
    # ------------------------
    def submit_otp(self, flow_id: str, code: str) -> PendingRegistration:
        pending = self.get(flow_id)
        self._require_stage(pending, FlowStage.OTP_SENT)

        if not self.otp_service.verify(pending.phone, code):
            self._audit("OTP_VERIFY_FAILED", pending.phone, pending.account_id, success=False)
            raise InvalidOrExpiredOtp()

        pending.stage = FlowStage.OTP_VERIFIED
        self.pending_store.save(pending)
        self._audit("OTP_VERIFIED", pending.phone, pending.account_id)
        return pending

    # ------------------------
    # OtpVerified -> Finalized
    # ------------------------
    def finalize(self, flow_id: str, password: Optional[str] = None) -> AuthResult:
        pending = self.get(flow_id)
        self._require_stage(pending, FlowStage.OTP_VERIFIED)

        if pending.is_new_account:
            account = self._create_account(pending, password)
            action = "REGISTRATION_SUCCESS"
        else:
            account = self.account_repo.get_by_id(pending.account_id) if pending.account_id else None
            if account is None:
                raise AccountNotFound()
            now = self.clock()
            self.account_repo.record_login(account.id, now)
            account.last_login = now
            action = "LOGIN_SUCCESS"

        if account.phone != pending.phone:
            # Never hand out a token for an account bound to another phone
            self._audit("IDENTITY_PHONE_CONFLICT", pending.phone, account.id, success=False)
            raise IdentityMismatch()

        token = self.token_service.issue(account.id, account.phone, account.role)

        pending.stage = FlowStage.FINALIZED
        self.pending_store.delete(flow_id)
        self._audit(action, pending.phone, account.id, details={"identity_mismatch": pending.identity_mismatch})
        logger.info(f"{action} for account {account.id}")

        return AuthResult(
            account=account,
            token=token,
            expires_in=self.token_service.expires_in,
            is_new_account=pending.is_new_account,
        )

    def _create_account(self, pending: PendingRegistration, password: Optional[str]) -> AccountDto:
        identity = pending.identity
        if identity is None:
            raise InvalidFlowState("registration flow without a resolved identity")

        # WeakCredential propagates; the flow stays at OtpVerified
        password_hash = self.password_policy.prepare(password)
        now = self.clock()
        new_account = NewAccount(
            nid_number=identity.nid_number,
            birth_certificate_number=identity.birth_certificate_number,
            full_name_bn=identity.full_name_bn,
            full_name_en=identity.full_name_en,
            father_name_bn=identity.father_name_bn,
            mother_name_bn=identity.mother_name_bn,
            date_of_birth=identity.date_of_birth,
            gender=identity.gender,
            phone=pending.phone,
            email=identity.email,
            permanent_address=identity.permanent_address,
            password_hash=password_hash,
            role=self.default_role,
            completion_percentage=initial_completion_score(identity, pending.phone),
            created_at=now,
        )
        # PersistenceFailure propagates before any token exists
        return self.account_repo.create_or_get(new_account)

    # ------------------------
    # Abandon / lookup
    # ------------------------
    def cancel(self, flow_id: str) -> None:
        pending = self.pending_store.get(flow_id)
        self.pending_store.delete(flow_id)
        if pending is not None:
            self._audit("FLOW_CANCELLED", pending.phone, pending.account_id)

    def get(self, flow_id: str) -> PendingRegistration:
        pending = self.pending_store.get(flow_id) if flow_id else None
        if pending is None:
            raise FlowExpired()
        return pending

    def _require_stage(self, pending: PendingRegistration, *allowed: FlowStage) -> None:
        if pending.stage not in allowed:
            raise InvalidFlowState(f"stage {pending.stage.value} not in {[s.value for s in allowed]}")

    def _audit(self, action: str, phone: str, user_id: Optional[str] = None, success: bool = True, details: Optional[dict] = None) -> None:
        if self.audit is not None:
            self.audit.log(action, phone, user_id=user_id, success=success, details=details)
