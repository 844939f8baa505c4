from passlib.context import CryptContext
from typing import List
import logging
import re

logger = logging.getLogger(__name__)

# Argon2 with library-default cost parameters; hashes are self-describing ($argon2id$...)
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128


def hash_password(password: str) -> str:
    """Hash a password with argon2"""
    return pwd_context.hash(password)


def verify_password(hashed_password: str, plain_password: str) -> bool:
    """Verify a password against its hash.

    A wrong password and a corrupted or unrecognised hash both come back as
    ``False``; the reason is only logged so callers can't be used as an oracle.
    """
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.warning(f"Password verification failed on malformed hash: {e}")
        return False


def validate_password_strength(password: str) -> List[str]:
    """Return the unmet password requirements (empty list = acceptable)"""
    errors = []

    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password) > MAX_PASSWORD_LENGTH:
        errors.append(f"Password must be at most {MAX_PASSWORD_LENGTH} characters long")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")

    return errors
