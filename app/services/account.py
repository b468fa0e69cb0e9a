"""Account service: registration, Google sign-in, email availability."""

import logging
from collections.abc import Callable
from datetime import datetime

from app.exceptions import EmailAlreadyRegistered
from app.models.account import User
from app.schemas.account import (
    AuthResponse,
    EmailAvailabilityResponse,
    GoogleSignInRequest,
    RegisterUserRequest,
    UserResponse,
)
from app.services.verification import (
    IssueOutcome,
    VerificationCodeManager,
    registration_code_expiry,
    utcnow,
)
from app.stores import AccountStore
from app.utils.crypto import hash_password, mint_session_token

logger = logging.getLogger(__name__)

PasswordHasher = Callable[[str], str]
TokenMinter = Callable[[int, datetime], str]


def _auth_response(user: User, token: str, is_new_user: bool) -> AuthResponse:
    return AuthResponse(
        user=UserResponse.model_validate(user),
        token=token,
        is_new_user=is_new_user,
    )


async def register_user(
    accounts: AccountStore,
    verification: VerificationCodeManager,
    data: RegisterUserRequest,
    *,
    password_hasher: PasswordHasher = hash_password,
    token_minter: TokenMinter = mint_session_token,
    clock: Callable[[], datetime] = utcnow,
) -> AuthResponse:
    """Create an unverified password account and send its first code.

    Raises EmailAlreadyRegistered if a user with the exact same email exists,
    including one inserted concurrently after the lookup.
    Failing to issue or deliver the code does not fail the registration.
    """
    if await accounts.get_by_email(data.email) is not None:
        raise EmailAlreadyRegistered()

    now = clock()
    user = await accounts.add(
        User(
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            password_hash=password_hasher(data.password),
            phone_number=data.phone_number or None,
            is_email_verified=False,
            created_at=now,
            updated_at=now,
        )
    )
    logger.info(
        "Registered user %s (%s), marketing_emails=%s",
        user.id, user.email, bool(data.marketing_emails),
    )

    result = await verification.issue(user.email, registration_code_expiry())
    if result.outcome is not IssueOutcome.ISSUED:
        logger.warning(
            "No registration code issued for %s: %s", user.email, result.outcome.value
        )

    return _auth_response(user, token_minter(user.id, now), is_new_user=True)


async def google_sign_in(
    accounts: AccountStore,
    data: GoogleSignInRequest,
    *,
    token_minter: TokenMinter = mint_session_token,
    clock: Callable[[], datetime] = utcnow,
) -> AuthResponse:
    """Upsert a user from a Google identity assertion and sign them in.

    Matches on google_id or email. The email is trusted as verified unless the
    assertion says otherwise.
    """
    now = clock()
    user = await accounts.find_by_google_id_or_email(data.google_id, data.email)

    if user is not None:
        user.google_id = data.google_id
        user.first_name = data.first_name
        user.last_name = data.last_name
        user.is_email_verified = data.email_verified
        user.updated_at = now
        user = await accounts.save(user)
        logger.info("Google sign-in for existing user %s", user.id)
        return _auth_response(user, token_minter(user.id, now), is_new_user=False)

    user = await accounts.add(
        User(
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            password_hash=None,
            google_id=data.google_id,
            is_email_verified=data.email_verified,
            created_at=now,
            updated_at=now,
        )
    )
    logger.info("Created user %s from Google sign-in", user.id)
    return _auth_response(user, token_minter(user.id, now), is_new_user=True)


def suggest_alternative_emails(email: str, year: int) -> list[str]:
    local, _, domain = email.rpartition("@")
    return [
        f"{local}.{year}@{domain}",
        f"{local}_{year}@{domain}",
        f"{local}.user@{domain}",
        f"{local}123@{domain}",
        f"{local}_official@{domain}",
    ]


async def check_email_availability(
    accounts: AccountStore,
    email: str,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> EmailAvailabilityResponse:
    if await accounts.get_by_email(email) is None:
        return EmailAvailabilityResponse(available=True)
    return EmailAvailabilityResponse(
        available=False,
        suggestions=suggest_alternative_emails(email, clock().year),
    )
