from typing import Any, Dict, Optional
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError
from core.database import Database
from core.errors import AuthError, ConflictError, RateLimitError, ValidationError
from core.security import (
    EMAIL_RE,
    USERNAME_RE,
    generate_token,
    hash_password,
    isoformat,
    password_policy_error,
    token_ttl,
    token_ttl_ms,
    utcnow,
    verify_password,
)
from utils.ids import generate_id
from utils.logger import get_logger

logger = get_logger("backend.services.auth")

INVALID_CREDENTIALS = "Invalid credentials"


def public_user(row: Dict[str, Any]) -> Dict[str, Any]:
    """The only user fields that ever leave the service."""
    return {
        "id": row["id"],
        "username": row["username"],
        "name": row["name"],
        "email": row.get("email") or None,
    }


class AuthService:
    """Signup, login, verify and logout against the users table."""

    def __init__(self, db: Database, limiter):
        self.db = db
        self.limiter = limiter

    def _session_payload(self, user: Dict[str, Any], token: str) -> Dict[str, Any]:
        return {"user": public_user(user), "token": token, "expires_in": token_ttl_ms()}

    # ------ Signup -----
    def validate_signup(self, username, password, name, email) -> None:
        """Raise ValidationError for the first rule the input breaks."""
        if not username or not password or not name or not email:
            raise ValidationError("Missing required fields")
        if not EMAIL_RE.fullmatch(email):
            raise ValidationError("Invalid email format")
        if len(username) < 3:
            raise ValidationError("Username must be at least 3 characters")
        if not USERNAME_RE.fullmatch(username):
            raise ValidationError("Username can only contain letters, numbers, underscores, and hyphens")
        policy_error = password_policy_error(password)
        if policy_error:
            raise ValidationError(policy_error)

    async def signup(self, username: Optional[str], password: Optional[str], name: Optional[str], email: Optional[str]) -> Dict[str, Any]:
        self.validate_signup(username, password, name, email)

        logger.info("User signup attempt", extra={"username": username})

        existing = await self.db.fetch_one(
            "SELECT id FROM users WHERE LOWER(username) = LOWER(:username)",
            {"username": username},
        )
        if existing:
            logger.warning("Signup failed - username exists", extra={"username": username})
            raise ConflictError("Username already exists")

        existing = await self.db.fetch_one(
            "SELECT id FROM users WHERE LOWER(email) = LOWER(:email)",
            {"email": email},
        )
        if existing:
            logger.warning("Signup failed - email exists", extra={"username": username})
            raise ConflictError("Email already registered")

        password_hash = await run_in_threadpool(hash_password, password)
        user = {"id": generate_id(), "username": username, "name": name, "email": email}
        token = generate_token()
        now = utcnow()

        try:
            await self.db.execute(
                "INSERT INTO users (id, username, password_hash, name, email, auth_token, token_expiry, created_at, updated_at) "
                "VALUES (:id, :username, :password_hash, :name, :email, :auth_token, :token_expiry, :now, :now)",
                {
                    **user,
                    "password_hash": password_hash,
                    "auth_token": token,
                    "token_expiry": isoformat(now + token_ttl()),
                    "now": isoformat(now),
                },
            )
        except IntegrityError as e:
            # Lost a race with a concurrent signup for the same name/email
            logger.warning("Signup failed - unique constraint", extra={"username": username})
            if "username" in str(e.orig).lower():
                raise ConflictError("Username already exists") from e
            raise ConflictError("Email already registered") from e

        logger.info("User signed up", extra={"user_id": user["id"]})
        return self._session_payload(user, token)

    # ------ Login -----
    async def login(self, username: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        if not username or not password:
            raise ValidationError("Missing username or password")

        if not self.limiter.check_and_record(username):
            raise RateLimitError("Too many login attempts. Please try again later.")

        logger.info("Login attempt", extra={"username": username})

        user = await self.db.fetch_one(
            "SELECT * FROM users WHERE LOWER(username) = LOWER(:username)",
            {"username": username},
        )

        # Same error for unknown user and wrong password
        if user is None:
            logger.warning("Login failed - invalid credentials", extra={"username": username})
            raise AuthError(INVALID_CREDENTIALS)

        if not await run_in_threadpool(verify_password, password, user["password_hash"]):
            logger.warning("Login failed - invalid credentials", extra={"username": username})
            raise AuthError(INVALID_CREDENTIALS)

        token = generate_token()
        now = utcnow()
        await self.db.execute(
            "UPDATE users SET auth_token = :token, token_expiry = :expiry, last_login = :now, updated_at = :now WHERE id = :id",
            {"token": token, "expiry": isoformat(now + token_ttl()), "now": isoformat(now), "id": user["id"]},
        )

        logger.info("Login successful", extra={"user_id": user["id"]})
        return self._session_payload(user, token)

    # ------ Verify -----
    async def verify(self, user_id: Optional[str]) -> Dict[str, Any]:
        """Confirm the id still resolves to a user. The stored token is not checked."""
        if not user_id:
            raise ValidationError("Missing userId")

        user = await self.db.fetch_one(
            "SELECT id, username, name, email FROM users WHERE id = :id",
            {"id": user_id},
        )
        if user is None:
            logger.warning("Verify failed - user not found", extra={"user_id": user_id})
            raise AuthError("User not found")

        return {"user": public_user(user)}

    # ------ Logout -----
    async def logout(self, user_id: Optional[str]) -> Dict[str, Any]:
        if not user_id:
            raise ValidationError("Missing userId")

        await self.db.execute(
            "UPDATE users SET auth_token = NULL, token_expiry = NULL WHERE id = :id",
            {"id": user_id},
        )
        logger.info("User logged out", extra={"user_id": user_id})
        return {"success": True}
