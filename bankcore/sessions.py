"""
Session Management Module

Server-side session records paired with signed JWTs. A token is only honoured
while its session record exists, so deleting the record (logout, or the next
login) revokes the token immediately even though its signature still verifies.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from .async_storage import AsyncStorageInterface
from .storage import StorageRecord

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "sessions"


@dataclass
class Session(StorageRecord):
    """Authenticated context for one user; created_at is the issue time"""
    user_id: str
    expires_at: datetime

    @property
    def is_valid(self) -> bool:
        """Check if session is still valid"""
        return self.expires_at > datetime.now(timezone.utc)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Session':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            user_id=data['user_id'],
            expires_at=datetime.fromisoformat(data['expires_at']),
        )


@dataclass(frozen=True)
class IssuedSession:
    session: Session
    token: str


class SessionManager:
    """Issues, verifies and revokes session tokens"""

    def __init__(self, storage: AsyncStorageInterface, secret: str,
                 algorithm: str = "HS256", expiry_hours: int = 168):
        if not secret:
            raise ValueError("Session signing secret must not be empty")
        self.storage = storage
        self._secret = secret
        self.algorithm = algorithm
        self.expiry = timedelta(hours=expiry_hours)

    async def issue(self, user_id: str) -> IssuedSession:
        """Persist a new session for the user and sign a token for it"""
        now = datetime.now(timezone.utc)
        session = Session(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            expires_at=now + self.expiry,
        )
        await self.storage.save(SESSIONS_TABLE, session.id, session.to_dict())

        token = jwt.encode(
            {
                "sid": session.id,
                "sub": user_id,
                "iat": now,
                "exp": session.expires_at,
            },
            self._secret,
            algorithm=self.algorithm,
        )
        return IssuedSession(session=session, token=token)

    def decode_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Claims of a correctly signed, unexpired token, or None"""
        if not token:
            return None
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["sid", "sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Rejected expired session token")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug("Rejected invalid session token: %s", e)
            return None

    async def verify(self, token: Optional[str]) -> Optional[Session]:
        """Session behind a token, or None if the token or its record is not live"""
        claims = self.decode_token(token)
        if not claims:
            return None

        data = await self.storage.load(SESSIONS_TABLE, claims["sid"])
        if not data:
            return None

        session = Session.from_dict(data)
        if session.user_id != claims["sub"] or not session.is_valid:
            return None
        return session

    async def revoke(self, session_id: str) -> bool:
        """Delete one session record"""
        return await self.storage.delete(SESSIONS_TABLE, session_id)

    async def revoke_user_sessions(self, user_id: str) -> int:
        """Delete every session record belonging to a user"""
        return await self.storage.delete_where(SESSIONS_TABLE, {"user_id": user_id})
