"""
Authentication Module

Signup, login, logout and token authentication for end users. Passwords are
scrypt-hashed, the SSN is encrypted before it is stored, and each successful
login replaces any earlier session so a user has at most one live session.
"""

import asyncio
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional

from .async_storage import AsyncStorageInterface
from .encryption import EncryptionProvider
from .errors import BankCoreError, EmailTakenError, InternalError, InvalidCredentialsError
from .logging_config import log_action
from .passwords import PasswordHasher
from .sessions import SessionManager
from .users import User, UserView
from .validation import validate_login, validate_signup

logger = logging.getLogger(__name__)

USERS_TABLE = "users"


@dataclass(frozen=True)
class AuthResult:
    user: UserView
    token: str


@dataclass(frozen=True)
class LogoutResult:
    success: bool = True


class AuthService:
    """User-facing authentication operations"""

    def __init__(self, storage: AsyncStorageInterface, encryption: EncryptionProvider,
                 password_hasher: PasswordHasher, sessions: SessionManager,
                 default_phone_region: str = "US"):
        self.storage = storage
        self.encryption = encryption
        self.password_hasher = password_hasher
        self.sessions = sessions
        self.default_phone_region = default_phone_region
        self._dummy_hash: Optional[str] = None

    async def _user_by_email(self, email: str) -> Optional[User]:
        data = await self.storage.find_one(USERS_TABLE, {"email": email})
        return User.from_dict(data) if data else None

    async def signup(self, payload: Mapping[str, Any], today: Optional[date] = None) -> AuthResult:
        """
        Register a new user and start a session.

        Raises:
            ValidationError: Payload failed one or more rules
            EmailTakenError: A user with the normalized email already exists
        """
        data = validate_signup(payload, today=today,
                               default_region=self.default_phone_region).raise_for_errors()

        try:
            if await self._user_by_email(data.email):
                raise EmailTakenError()

            # CPU-heavy; keep them off the event loop
            password_hash = await asyncio.to_thread(self.password_hasher.hash, data.password)
            ssn_encrypted = await asyncio.to_thread(self.encryption.encrypt, data.ssn)

            now = datetime.now(timezone.utc)
            user = User(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                email=data.email,
                password_hash=password_hash,
                first_name=data.first_name,
                last_name=data.last_name,
                phone_number=data.phone_number,
                date_of_birth=data.date_of_birth,
                ssn_encrypted=ssn_encrypted,
                address=data.address,
                city=data.city,
                state=data.state,
                zip_code=data.zip_code,
            )

            async with self.storage.atomic():
                if await self._user_by_email(data.email):
                    raise EmailTakenError()
                await self.storage.save(USERS_TABLE, user.id, user.to_dict())
                issued = await self.sessions.issue(user.id)
        except BankCoreError:
            raise
        except Exception as e:
            logger.exception("Signup failed")
            raise InternalError() from e

        log_action(logger, "info", "User signed up", user_id=user.id,
                   action="signup", resource=issued.session.id)
        return AuthResult(user=user.to_view(), token=issued.token)

    async def _burn_dummy_verify(self, password: str) -> None:
        """Spend the same hashing time as a real check for unknown emails"""
        if self._dummy_hash is None:
            self._dummy_hash = await asyncio.to_thread(
                self.password_hasher.hash, secrets.token_urlsafe(16)
            )
        await asyncio.to_thread(self.password_hasher.verify, password, self._dummy_hash)

    async def login(self, email: Any, password: Any) -> AuthResult:
        """
        Authenticate by email and password, replacing any existing session.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password (indistinguishable)
        """
        result = validate_login({"email": email, "password": password})
        if not result.is_valid:
            raise InvalidCredentialsError()
        credentials = result.value

        try:
            user = await self._user_by_email(credentials.email)
            if user is None:
                await self._burn_dummy_verify(credentials.password)
                log_action(logger, "warning", "Login failed", action="login_failed")
                raise InvalidCredentialsError()

            verified = await asyncio.to_thread(
                self.password_hasher.verify, credentials.password, user.password_hash
            )
            if not verified:
                log_action(logger, "warning", "Login failed", user_id=user.id, action="login_failed")
                raise InvalidCredentialsError()

            async with self.storage.atomic():
                revoked = await self.sessions.revoke_user_sessions(user.id)
                issued = await self.sessions.issue(user.id)
        except BankCoreError:
            raise
        except Exception as e:
            logger.exception("Login failed")
            raise InternalError() from e

        log_action(logger, "info", "User logged in", user_id=user.id, action="login",
                   resource=issued.session.id, details={"revoked_sessions": revoked})
        return AuthResult(user=user.to_view(), token=issued.token)

    async def logout(self, token: Optional[str] = None) -> LogoutResult:
        """End the session behind a token. Always succeeds, even without a token."""
        if not token:
            return LogoutResult(success=True)

        try:
            async with self.storage.atomic():
                session = await self.sessions.verify(token)
                if session:
                    await self.sessions.revoke(session.id)
            if session:
                log_action(logger, "info", "User logged out", user_id=session.user_id,
                           action="logout", resource=session.id)
        except Exception as e:
            logger.exception("Logout failed")
            raise InternalError() from e

        return LogoutResult(success=True)

    async def authenticate(self, token: Optional[str]) -> Optional[UserView]:
        """User behind a live session token, or None"""
        if not token:
            return None

        try:
            session = await self.sessions.verify(token)
            if not session:
                return None
            data = await self.storage.load(USERS_TABLE, session.user_id)
        except Exception as e:
            logger.exception("Token authentication failed")
            raise InternalError() from e

        return User.from_dict(data).to_view() if data else None
