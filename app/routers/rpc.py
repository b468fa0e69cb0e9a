"""Named RPC procedures: registration, Google sign-in, email verification."""

from fastapi import APIRouter, Depends, HTTPException, Query

from app.schemas.account import (
    AuthResponse,
    EmailAvailabilityResponse,
    EmailInput,
    GoogleSignInRequest,
    RegisterUserRequest,
    StatusResponse,
    VerifyEmailRequest,
    validate_email_address,
)
from app.services import account as account_service
from app.services.email import EmailSender, get_email_sender
from app.services.verification import (
    ConsumeOutcome,
    IssueOutcome,
    VerificationCodeManager,
    resend_code_expiry,
)
from app.stores import Stores, get_stores

router = APIRouter(prefix="/rpc", tags=["rpc"])

ISSUE_MESSAGES: dict[IssueOutcome, StatusResponse] = {
    IssueOutcome.ISSUED: StatusResponse(
        success=True,
        message="Verification code sent to your email. Please check your inbox.",
    ),
    IssueOutcome.ALREADY_VERIFIED: StatusResponse(
        success=False,
        message="This email is already registered and verified. Please sign in instead.",
    ),
    IssueOutcome.ALREADY_PENDING: StatusResponse(
        success=False,
        message="A verification code was already sent recently. "
                "Please check your email or wait before requesting a new code.",
    ),
}

CONSUME_MESSAGES: dict[ConsumeOutcome, StatusResponse] = {
    ConsumeOutcome.VERIFIED: StatusResponse(
        success=True, message="Email successfully verified!"
    ),
    ConsumeOutcome.INVALID_CODE: StatusResponse(
        success=False,
        message="Invalid verification code. Please check your email and try again.",
    ),
    ConsumeOutcome.EXPIRED: StatusResponse(
        success=False,
        message="Verification code has expired. Please request a new code.",
    ),
    ConsumeOutcome.ACCOUNT_MISSING: StatusResponse(
        success=False,
        message="User account not found. Please contact support.",
    ),
}


def get_verification_manager(
    stores: Stores = Depends(get_stores),
    sender: EmailSender = Depends(get_email_sender),
) -> VerificationCodeManager:
    return VerificationCodeManager(stores.accounts, stores.codes, sender)


def _email_query(email: str = Query(..., max_length=255)) -> str:
    try:
        return validate_email_address(email)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/registerUser", response_model=AuthResponse, status_code=201)
async def register_user(
    data: RegisterUserRequest,
    stores: Stores = Depends(get_stores),
    verification: VerificationCodeManager = Depends(get_verification_manager),
) -> AuthResponse:
    """Create a password account. A 24-hour verification code is emailed."""
    return await account_service.register_user(stores.accounts, verification, data)


@router.post("/googleSignIn", response_model=AuthResponse)
async def google_sign_in(
    data: GoogleSignInRequest,
    stores: Stores = Depends(get_stores),
) -> AuthResponse:
    return await account_service.google_sign_in(stores.accounts, data)


@router.get(
    "/checkEmailAvailability",
    response_model=EmailAvailabilityResponse,
    response_model_exclude_none=True,
)
async def check_email_availability(
    email: str = Depends(_email_query),
    stores: Stores = Depends(get_stores),
) -> EmailAvailabilityResponse:
    """Report whether an email is free; suggest alternatives when it is not."""
    return await account_service.check_email_availability(stores.accounts, email)


@router.post("/sendVerificationCode", response_model=StatusResponse)
async def send_verification_code(
    data: EmailInput,
    verification: VerificationCodeManager = Depends(get_verification_manager),
) -> StatusResponse:
    """Email a fresh 15-minute code unless one is still live."""
    result = await verification.issue(data.email, resend_code_expiry())
    return ISSUE_MESSAGES[result.outcome]


@router.post("/verifyEmail", response_model=StatusResponse)
async def verify_email(
    data: VerifyEmailRequest,
    verification: VerificationCodeManager = Depends(get_verification_manager),
) -> StatusResponse:
    outcome = await verification.consume(data.email, data.verification_code)
    return CONSUME_MESSAGES[outcome]
