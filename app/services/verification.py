"""Email verification code lifecycle: issue, consume, expire.

A code row moves through exactly one state, pending, and leaves it by being
deleted: on successful consumption, when consumption finds it expired, or
when a later ``issue`` sweeps it as expired. Verification status lives on
the user row only.

Every call re-reads the stores. No transaction spans the steps of ``issue``
or ``consume``: two concurrent ``issue`` calls for the same email can both
see "no live code" and insert one each, and two concurrent ``consume`` calls
can both verify the user (the second delete is a no-op).
"""

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.config import settings
from app.services.email import EmailSender, render_verification_email
from app.stores import AccountStore, VerificationCodeStore
from app.utils.crypto import generate_verification_code

logger = logging.getLogger(__name__)


def resend_code_expiry() -> timedelta:
    """Window for a code requested on its own (default 15 minutes)."""
    return timedelta(minutes=settings.verification_code_expiry_minutes)


def registration_code_expiry() -> timedelta:
    """Window for the code issued at registration (default 24 hours)."""
    return timedelta(hours=settings.registration_code_expiry_hours)


def utcnow() -> datetime:
    return datetime.now(UTC)


class IssueOutcome(enum.Enum):
    ISSUED = "issued"
    ALREADY_VERIFIED = "already_verified"
    ALREADY_PENDING = "already_pending"


class ConsumeOutcome(enum.Enum):
    VERIFIED = "verified"
    INVALID_CODE = "invalid_code"
    EXPIRED = "expired"
    ACCOUNT_MISSING = "account_missing"


@dataclass(frozen=True)
class IssueResult:
    outcome: IssueOutcome
    code: str | None = None
    expires_at: datetime | None = None


class VerificationCodeManager:
    def __init__(
        self,
        accounts: AccountStore,
        codes: VerificationCodeStore,
        sender: EmailSender,
        clock: Callable[[], datetime] = utcnow,
        code_generator: Callable[[], str] = generate_verification_code,
    ) -> None:
        self.accounts = accounts
        self.codes = codes
        self.sender = sender
        self.clock = clock
        self.code_generator = code_generator

    async def issue(self, email: str, expires_in: timedelta) -> IssueResult:
        """Issue a new code for ``email`` valid for ``expires_in``.

        Refused when the user is already verified, or when a live code for the
        email exists. Expired codes are swept first so they never block a
        reissue. The email is sent after the row is persisted; a send failure
        is logged and does not undo the issuance.
        """
        user = await self.accounts.get_by_email(email)
        if user is not None and user.is_email_verified:
            logger.info("Code not issued for %s: email already verified", email)
            return IssueResult(IssueOutcome.ALREADY_VERIFIED)

        now = self.clock()
        swept = await self.codes.delete_expired(email, now)
        if swept:
            logger.debug("Swept %d expired code(s) for %s", swept, email)

        live = await self.codes.list_live(email, now)
        if live:
            logger.info("Code not issued for %s: a live code already exists", email)
            return IssueResult(IssueOutcome.ALREADY_PENDING)

        code = self.code_generator()
        expires_at = now + expires_in
        await self.codes.add(email, code, expires_at)
        logger.info("Verification code issued for %s (expires %s)", email, expires_at.isoformat())

        subject, body = render_verification_email(code, expires_in)
        try:
            await self.sender.send(to=email, subject=subject, body=body)
        except Exception:
            logger.exception("Failed to send verification code to %s", email)

        return IssueResult(IssueOutcome.ISSUED, code=code, expires_at=expires_at)

    async def consume(self, email: str, code: str) -> ConsumeOutcome:
        """Redeem ``code`` for ``email`` and mark the user verified.

        The code is compared as a string. An expired row is deleted on sight.
        The row is only deleted after the user update touched a row; if no
        user has this email the code is left in place for a later attempt.
        """
        verification = await self.codes.find(email, code)
        if verification is None:
            return ConsumeOutcome.INVALID_CODE

        now = self.clock()
        if verification.expires_at <= now:
            await self.codes.delete(verification.id)
            logger.info("Expired verification code presented for %s", email)
            return ConsumeOutcome.EXPIRED

        updated = await self.accounts.mark_email_verified(email, now)
        if updated == 0:
            logger.warning("Valid code for %s but no matching user", email)
            return ConsumeOutcome.ACCOUNT_MISSING

        await self.codes.delete(verification.id)
        logger.info("Email verified for %s", email)
        return ConsumeOutcome.VERIFIED
