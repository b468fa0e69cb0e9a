"""Store interfaces for users and verification codes.

Services depend on the ``AccountStore`` / ``VerificationCodeStore`` protocols
rather than on a session, so tests can swap in in-memory fakes. The SQL
implementations commit after every mutating statement: each call is atomic
on its own, but nothing spans several calls.

All email matching is exact and case-sensitive.
"""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from fastapi import Depends
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import EmailAlreadyRegistered
from app.models.account import EmailVerification, User


class AccountStore(Protocol):
    async def get_by_email(self, email: str) -> User | None: ...

    async def find_by_google_id_or_email(
        self, google_id: str, email: str
    ) -> User | None: ...

    async def add(self, user: User) -> User:
        """Insert ``user``. Raises EmailAlreadyRegistered if the email is taken."""
        ...

    async def save(self, user: User) -> User: ...

    async def mark_email_verified(self, email: str, now: datetime) -> int:
        """Set the verified flag on the user with ``email``. Returns rows affected."""
        ...


class VerificationCodeStore(Protocol):
    async def add(
        self, email: str, code: str, expires_at: datetime
    ) -> EmailVerification: ...

    async def find(self, email: str, code: str) -> EmailVerification | None: ...

    async def list_live(self, email: str, now: datetime) -> list[EmailVerification]:
        """Codes for ``email`` with ``expires_at`` strictly after ``now``."""
        ...

    async def delete_expired(self, email: str, now: datetime) -> int:
        """Delete codes for ``email`` with ``expires_at`` strictly before ``now``."""
        ...

    async def delete(self, verification_id: int) -> int: ...


class SqlAccountStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_by_email(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def find_by_google_id_or_email(
        self, google_id: str, email: str
    ) -> User | None:
        result = await self.db.execute(
            select(User).where(or_(User.google_id == google_id, User.email == email))
        )
        return result.scalars().first()

    async def add(self, user: User) -> User:
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            # users.email is unique; a concurrent registration won the insert
            await self.db.rollback()
            raise EmailAlreadyRegistered()
        await self.db.refresh(user)
        return user

    async def save(self, user: User) -> User:
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def mark_email_verified(self, email: str, now: datetime) -> int:
        result = await self.db.execute(
            update(User)
            .where(User.email == email)
            .values(is_email_verified=True, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount


class SqlVerificationCodeStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def add(
        self, email: str, code: str, expires_at: datetime
    ) -> EmailVerification:
        verification = EmailVerification(
            email=email,
            verification_code=code,
            expires_at=expires_at,
        )
        self.db.add(verification)
        await self.db.commit()
        await self.db.refresh(verification)
        return verification

    async def find(self, email: str, code: str) -> EmailVerification | None:
        result = await self.db.execute(
            select(EmailVerification).where(
                EmailVerification.email == email,
                EmailVerification.verification_code == code,
            )
        )
        return result.scalars().first()

    async def list_live(self, email: str, now: datetime) -> list[EmailVerification]:
        result = await self.db.execute(
            select(EmailVerification).where(
                EmailVerification.email == email,
                EmailVerification.expires_at > now,
            )
        )
        return list(result.scalars().all())

    async def delete_expired(self, email: str, now: datetime) -> int:
        result = await self.db.execute(
            delete(EmailVerification)
            .where(
                EmailVerification.email == email,
                EmailVerification.expires_at < now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount

    async def delete(self, verification_id: int) -> int:
        result = await self.db.execute(
            delete(EmailVerification)
            .where(EmailVerification.id == verification_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount


@dataclass
class Stores:
    accounts: AccountStore
    codes: VerificationCodeStore


async def get_stores(
    db: AsyncSession = Depends(get_db),
) -> AsyncGenerator[Stores, None]:
    yield Stores(accounts=SqlAccountStore(db), codes=SqlVerificationCodeStore(db))
