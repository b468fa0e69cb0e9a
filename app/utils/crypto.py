"""Password digests (bcrypt), session tokens (JWT via PyJWT), verification codes."""

import hashlib
import secrets
from datetime import datetime

import bcrypt
import jwt

from app.config import settings

VERIFICATION_CODE_LENGTH = 6
SESSION_TOKEN_ALGORITHM = "HS256"


def _bcrypt_input(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    raw = password.encode("utf-8")
    if len(raw) > 72:
        raw = hashlib.sha256(raw).hexdigest().encode("ascii")
    return raw


def hash_password(password: str) -> str:
    """Return a salted bcrypt digest of ``password``."""
    return bcrypt.hashpw(_bcrypt_input(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_bcrypt_input(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_verification_code() -> str:
    """Uniformly random 6-digit code. Leading zeros are kept."""
    return f"{secrets.randbelow(10 ** VERIFICATION_CODE_LENGTH):0{VERIFICATION_CODE_LENGTH}d}"


def mint_session_token(account_id: int, issued_at: datetime) -> str:
    """Mint a signed JWT bound to ``account_id``.

    Claims are the subject, issuance time, expiry and a random ``jti`` so two
    tokens minted in the same second still differ.
    """
    iat = int(issued_at.timestamp())
    payload = {
        "sub": str(account_id),
        "iat": iat,
        "exp": iat + settings.session_token_ttl_seconds,
        "jti": secrets.token_urlsafe(16),
    }
    return jwt.encode(payload, settings.platform_signing_key, algorithm=SESSION_TOKEN_ALGORITHM)


def read_session_token(token: str) -> dict | None:
    """Verify a session token's signature and expiry. Returns the claims or None."""
    try:
        return jwt.decode(
            token,
            settings.platform_signing_key,
            algorithms=[SESSION_TOKEN_ALGORITHM],
            options={"require": ["sub", "iat", "exp"]},
        )
    except jwt.InvalidTokenError:
        return None
