import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from core.config import settings
from utils.logger import get_logger

logger = get_logger("backend.core.security")

# Password hashing
import bcrypt

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
USERNAME_RE = re.compile(r"[a-zA-Z0-9_-]+")

# ------ Password Hashing -----
def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash password using bcrypt. Safely handles 72-byte limit.

    Returns hashed password as string.
    """
    # bcrypt only looks at the first 72 bytes
    password_bytes = password.encode('utf-8')[:72]

    if not password_bytes:
        raise ValueError("Password cannot be empty")

    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password_bytes, salt)

    return hashed.decode('utf-8')

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against bcrypt hash."""
    password_bytes = plain_password.encode('utf-8')[:72]

    if not password_bytes or not hashed_password:
        return False

    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False

# ------ Bearer tokens -----
def generate_token() -> str:
    """256-bit random token rendered as 64 hex chars."""
    return secrets.token_hex(32)

def token_ttl() -> timedelta:
    return timedelta(days=settings.AUTH_TOKEN_TTL_DAYS)

def token_ttl_ms() -> int:
    return int(token_ttl().total_seconds() * 1000)

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def isoformat(moment: datetime) -> str:
    """Fixed-width ISO-8601 so stored timestamps sort chronologically as text."""
    return moment.isoformat(timespec="microseconds")

# ------ Input policy -----
def password_policy_error(password: str) -> Optional[str]:
    """Return the first password rule violated, or None."""
    if len(password) < 8:
        return "Password must be at least 8 characters"
    if not re.search(r"[a-z]", password) or not re.search(r"[A-Z]", password):
        return "Password must contain uppercase and lowercase letters"
    if not re.search(r"[0-9]", password):
        return "Password must contain at least one number"
    return None
