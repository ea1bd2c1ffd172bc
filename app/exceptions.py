import logging
from typing import Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .core.config import settings

logger = logging.getLogger(__name__)


class AuthFlowError(Exception):
    """Base class for rejections raised by the authentication flow.

    Every subclass carries a stable ``code``, the HTTP status the API layer
    answers with, and a localized message table. Nothing else about the
    exception is ever shown to the caller.
    """

    code = "AUTH_ERROR"
    status_code = 400
    messages: Dict[str, str] = {
        "en": "Something went wrong. Please try again later.",
        "bn": "একটি ত্রুটি হয়েছে। পরে চেষ্টা করুন",
    }

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(detail or self.code)

    def localized_message(self, language: Optional[str] = None) -> str:
        lang = (language or settings.DEFAULT_LANGUAGE).lower()
        return self.messages.get(lang) or self.messages["en"]


class IdentityNotFound(AuthFlowError):
    code = "IDENTITY_NOT_FOUND"
    status_code = 404
    messages = {
        "en": "No identity record was found for this NID. Please check the number.",
        "bn": "NID তথ্য পাওয়া যায়নি। অনুগ্রহ করে সঠিক NID নম্বর দিন।",
    }


class IdentityMismatch(AuthFlowError):
    code = "IDENTITY_MISMATCH"
    status_code = 409
    messages = {
        "en": "This mobile number does not match the identity record.",
        "bn": "এই মোবাইল নম্বর এই NID এর সাথে মিলছে না।",
    }


class AccountNotFound(AuthFlowError):
    code = "ACCOUNT_NOT_FOUND"
    status_code = 404
    messages = {
        "en": "No account is registered with this mobile number. Please register first.",
        "bn": "এই মোবাইল নম্বর দিয়ে কোন অ্যাকাউন্ট নেই। রেজিস্ট্রেশন করুন।",
    }


class RateLimited(AuthFlowError):
    code = "RATE_LIMITED"
    status_code = 429
    messages = {
        "en": "Too many OTP requests. Please wait before trying again.",
        "bn": "অনেকবার OTP চাওয়া হয়েছে। কিছুক্ষণ অপেক্ষা করে আবার চেষ্টা করুন।",
    }

    def __init__(self, retry_after: int, detail: Optional[str] = None, flow_id: Optional[str] = None):
        self.retry_after = max(0, int(retry_after))
        # Set when a flow is still open, so the caller can retry it later
        self.flow_id = flow_id
        super().__init__(detail)


class InvalidOrExpiredOtp(AuthFlowError):
    code = "INVALID_OTP"
    status_code = 400
    messages = {
        "en": "Incorrect or expired OTP. Please try again.",
        "bn": "ভুল OTP কোড। আবার চেষ্টা করুন।",
    }


class WeakCredential(AuthFlowError):
    code = "WEAK_PASSWORD"
    status_code = 400
    messages = {
        "en": "Password must be at least 8 characters and contain upper and lower case letters, a digit and a symbol.",
        "bn": "পাসওয়ার্ড কমপক্ষে ৮ অক্ষরের হতে হবে এবং বড় হাতের, ছোট হাতের অক্ষর, সংখ্যা ও চিহ্ন থাকতে হবে।",
    }

    def __init__(self, failures=None, detail: Optional[str] = None):
        self.failures = list(failures or [])
        super().__init__(detail)


class FlowExpired(AuthFlowError):
    code = "FLOW_EXPIRED"
    status_code = 410
    messages = {
        "en": "Your registration session has expired. Please start again.",
        "bn": "আপনার সেশনের মেয়াদ শেষ হয়েছে। আবার শুরু করুন।",
    }


class InvalidFlowState(AuthFlowError):
    code = "INVALID_FLOW_STATE"
    status_code = 409
    messages = {
        "en": "This step cannot be performed right now. Please follow the steps in order.",
        "bn": "এই ধাপটি এখন সম্পন্ন করা যাবে না। অনুগ্রহ করে ধাপগুলো ক্রমানুসারে করুন।",
    }


class InvalidToken(AuthFlowError):
    code = "INVALID_TOKEN"
    status_code = 401
    messages = {
        "en": "Your session is invalid or has expired. Please log in again.",
        "bn": "আপনার সেশন সঠিক নয় বা মেয়াদ শেষ। আবার লগইন করুন।",
    }


class Forbidden(AuthFlowError):
    code = "FORBIDDEN"
    status_code = 403
    messages = {
        "en": "You do not have permission to access this resource.",
        "bn": "এই তথ্য দেখার অনুমতি আপনার নেই।",
    }


class PersistenceFailure(AuthFlowError):
    code = "INTERNAL_ERROR"
    status_code = 500


def create_error_response(error_message: str, status_code: int = 400, code: Optional[str] = None) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "data": None,
        "error": error_message,
        "code": code,
    }

def create_success_response(data: dict) -> dict:
    """Create a standardized success response"""
    return {
        "success": True,
        "data": data,
        "error": None
    }

def preferred_language(request: Request) -> str:
    header = request.headers.get("accept-language", "")
    for part in header.split(","):
        lang = part.split(";")[0].strip().lower()[:2]
        if lang in ("bn", "en"):
            return lang
    return settings.DEFAULT_LANGUAGE

async def auth_flow_exception_handler(request: Request, exc: AuthFlowError) -> JSONResponse:
    """Render a domain rejection as a localized error envelope"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.detail}")
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    elif isinstance(exc, InvalidToken):
        headers = {"WWW-Authenticate": "Bearer"}
    content = create_error_response(exc.localized_message(preferred_language(request)), exc.status_code, exc.code)
    if isinstance(exc, RateLimited):
        content["retry_after"] = exc.retry_after
        if exc.flow_id:
            content["flow_id"] = exc.flow_id
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    # Convert 403 from HTTPBearer to 401 for missing authentication
    if exc.status_code == 403 and "Not authenticated" in str(exc.detail):
        return JSONResponse(
            status_code=401,
            content=create_error_response("Authentication required", 401, InvalidToken.code)
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.detail, exc.status_code)
    )

# Per-field messages for malformed input, keyed by field name
VALIDATION_MESSAGES: Dict[str, Dict[str, str]] = {
    "id_number": {
        "en": "ID number must be 10, 13, 14, 15 or 17 digits.",
        "bn": "আইডি নম্বর ১০, ১৩, ১৪, ১৫ অথবা ১৭ সংখ্যার হতে হবে।",
    },
    "mobile_number": {
        "en": "Invalid mobile number. Use an 11 digit number such as 01712345678.",
        "bn": "মোবাইল নম্বর সঠিক নয়। ০১৭১২৩৪৫৬৭৮ এর মতো ১১ সংখ্যার নম্বর দিন।",
    },
    "otp": {
        "en": "OTP must be exactly 6 digits.",
        "bn": "OTP অবশ্যই ৬ সংখ্যার হতে হবে।",
    },
    "flow_id": {
        "en": "Invalid flow id. Please start again.",
        "bn": "ফ্লো আইডি সঠিক নয়। আবার শুরু করুন।",
    },
    "password": {
        "en": "Password must be at most 128 characters.",
        "bn": "পাসওয়ার্ড সর্বোচ্চ ১২৮ অক্ষরের হতে পারে।",
    },
}
REQUIRED_FIELD_MESSAGE = {"en": "This field is required.", "bn": "এই তথ্যটি দিতে হবে।"}
INVALID_VALUE_MESSAGE = {"en": "Invalid value.", "bn": "মানটি সঠিক নয়।"}
INVALID_REQUEST_MESSAGE = {"en": "Invalid request data", "bn": "অনুরোধের তথ্য সঠিক নয়"}

def _localized(table: Dict[str, str], lang: str) -> str:
    return table.get(lang) or table["en"]

def _field_error(err: dict, lang: str) -> Dict[str, str]:
    loc = [str(p) for p in err.get("loc", ())]
    if err.get("type") == "missing":
        table = REQUIRED_FIELD_MESSAGE
    else:
        table = VALIDATION_MESSAGES.get(loc[-1] if loc else "", INVALID_VALUE_MESSAGE)
    return {"field": ".".join(loc[1:]), "message": _localized(table, lang)}

async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed input in the same envelope, field by field, in the caller's language"""
    lang = preferred_language(request)
    logger.debug(f"Validation failed on {request.method} {request.url.path}: {exc.errors()}")
    content = create_error_response(_localized(INVALID_REQUEST_MESSAGE, lang), 422, "VALIDATION_ERROR")
    content["errors"] = [_field_error(err, lang) for err in exc.errors()]
    return JSONResponse(status_code=422, content=content)
