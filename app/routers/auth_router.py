import logging

from fastapi import APIRouter, Depends

from ..application.ports.account_repo import AccountDto
from ..application.services.registration_service import OtpDispatch, RegistrationService
from ..application.services.token_service import TokenClaims
from ..core.dependencies import get_registration_service, require_role
from ..exceptions import create_success_response
from ..schemas.common.common import ErrorResponse
from ..schemas.auth.auth import (
    APIResponse,
    AuthData,
    FinalizeRequest,
    FlowRequest,
    LoginRequest,
    MeData,
    OTPDispatchData,
    RegisterRequest,
    ResendWaitData,
    UserData,
    VerifyOTPData,
    VerifyOTPRequest,
)
from ..utils import mask_phone_number

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["Authentication"],
    responses={code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 409, 410, 422, 429, 500)},
)


def _dispatch_data(dispatch: OtpDispatch, is_new_account: bool, phone: str) -> dict:
    return OTPDispatchData(
        flow_id=dispatch.flow_id,
        is_new_account=is_new_account,
        masked_mobile=mask_phone_number(phone),
        expires_in=dispatch.expires_in,
        resend_wait_seconds=dispatch.resend_wait_seconds,
        sms_sent=dispatch.dispatched,
        demo_otp=dispatch.demo_code,
    ).model_dump()


def _user_data(account: AccountDto) -> UserData:
    return UserData(
        id=account.id,
        full_name_bn=account.full_name_bn,
        full_name_en=account.full_name_en,
        nid_number=account.nid_number,
        birth_certificate_number=account.birth_certificate_number,
        date_of_birth=account.date_of_birth,
        phone=account.phone,
        role=account.role,
        verification_status=account.verification_status,
        completion_percentage=account.completion_percentage,
        has_password=account.has_password,
        last_login=account.last_login,
        created_at=account.created_at,
    )


# ------------------------
# Flow entry points
# ------------------------
@router.post("/register", response_model=APIResponse)
def register(body: RegisterRequest, service: RegistrationService = Depends(get_registration_service)):
    """Resolve the identity, open a flow and send the first OTP.

    An identity that already has an account for this mobile number continues
    on the login path; the response says which one via ``is_new_account``.
    """
    pending = service.begin(body.id_number, body.mobile_number)
    dispatch = service.request_otp(pending.flow_id)
    return create_success_response(_dispatch_data(dispatch, pending.is_new_account, pending.phone))


@router.post("/login", response_model=APIResponse)
def login(body: LoginRequest, service: RegistrationService = Depends(get_registration_service)):
    pending = service.begin_login(body.mobile_number)
    dispatch = service.request_otp(pending.flow_id)
    return create_success_response(_dispatch_data(dispatch, False, pending.phone))


# ------------------------
# OTP
# ------------------------
@router.post("/otp/resend", response_model=APIResponse)
def resend_otp(body: FlowRequest, service: RegistrationService = Depends(get_registration_service)):
    pending = service.get(body.flow_id)
    dispatch = service.request_otp(body.flow_id)
    return create_success_response(_dispatch_data(dispatch, pending.is_new_account, pending.phone))


@router.get("/otp/resend-wait/{flow_id}", response_model=APIResponse)
def resend_wait(flow_id: str, service: RegistrationService = Depends(get_registration_service)):
    wait = service.resend_wait_seconds(flow_id)
    return create_success_response(
        ResendWaitData(flow_id=flow_id, resend_wait_seconds=wait, can_resend=wait == 0).model_dump()
    )


@router.post("/otp/verify", response_model=APIResponse)
def verify_otp(body: VerifyOTPRequest, service: RegistrationService = Depends(get_registration_service)):
    pending = service.submit_otp(body.flow_id, body.otp)
    return create_success_response(
        VerifyOTPData(flow_id=pending.flow_id, stage=pending.stage.value, is_new_account=pending.is_new_account).model_dump()
    )


# ------------------------
# Completion
# ------------------------
@router.post("/finalize", response_model=APIResponse)
def finalize(body: FinalizeRequest, service: RegistrationService = Depends(get_registration_service)):
    result = service.finalize(body.flow_id, body.password)
    data = AuthData(
        token=result.token,
        expires_in=result.expires_in,
        is_new_account=result.is_new_account,
        user=_user_data(result.account),
    )
    return create_success_response(data.model_dump(mode="json"))


@router.delete("/flows/{flow_id}", response_model=APIResponse)
def cancel_flow(flow_id: str, service: RegistrationService = Depends(get_registration_service)):
    service.cancel(flow_id)
    return create_success_response({"flow_id": flow_id, "cancelled": True})


@router.get("/me", response_model=APIResponse)
def me(claims: TokenClaims = Depends(require_role("Tenant"))):
    data = MeData(
        user_id=claims.subject_id,
        phone=claims.phone,
        role=claims.role,
        token_id=claims.token_id,
        issued_at=claims.issued_at,
        expires_at=claims.expires_at,
    )
    return create_success_response(data.model_dump(mode="json"))
