"""
Password hashing, session identifiers and password reset tokens.

Passwords are stored as bcrypt hashes (12 rounds). Reset tokens are mailed
to the user in plain form and stored only as their SHA-256 digest.
"""

import base64
import hashlib
import secrets

import bcrypt

BCRYPT_ROUNDS = 12
BCRYPT_MAX_BYTES = 72


def _bcrypt_input(password: str) -> bytes:
    raw = password.encode("utf-8")
    if len(raw) <= BCRYPT_MAX_BYTES:
        return raw
    # bcrypt ignores everything past 72 bytes; fold long inputs into a 44-byte digest
    return base64.b64encode(hashlib.sha256(raw).digest())


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """False for a wrong password and for a stored value that is not a bcrypt hash."""
    try:
        return bcrypt.checkpw(_bcrypt_input(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    hashed = bcrypt.hashpw(_bcrypt_input(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def generate_session_id() -> str:
    """Generate an unguessable session identifier for the session cookie."""
    return secrets.token_urlsafe(32)


def generate_reset_token() -> str:
    return secrets.token_urlsafe(32)


def hash_reset_token(token: str) -> str:
    """Digest stored in ``_password_reset``; the plain token only travels by email."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
