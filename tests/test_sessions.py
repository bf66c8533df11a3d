"""
Tests for session tokens
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from bankcore.async_storage import AsyncInMemoryStorage
from bankcore.sessions import SESSIONS_TABLE, SessionManager

from .conftest import TEST_SECRET


class TestSessionManager:
    """Test issuing, verifying and revoking sessions"""
    
    def setup_method(self):
        self.storage = AsyncInMemoryStorage()
        self.manager = SessionManager(self.storage, secret=TEST_SECRET, expiry_hours=1)
    
    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            SessionManager(self.storage, secret="")
    
    @pytest.mark.asyncio
    async def test_issue_and_verify(self):
        issued = await self.manager.issue("user-1")
        
        claims = jwt.decode(issued.token, TEST_SECRET, algorithms=["HS256"])
        assert claims["sid"] == issued.session.id
        assert claims["sub"] == "user-1"
        assert claims["exp"] > claims["iat"]
        
        session = await self.manager.verify(issued.token)
        assert session is not None
        assert session.id == issued.session.id
        assert session.user_id == "user-1"
        assert await self.storage.count(SESSIONS_TABLE) == 1
    
    @pytest.mark.asyncio
    async def test_revoked_session_rejected(self):
        issued = await self.manager.issue("user-1")
        assert await self.manager.revoke(issued.session.id) is True
        assert await self.manager.verify(issued.token) is None
    
    @pytest.mark.asyncio
    async def test_revoke_user_sessions(self):
        first = await self.manager.issue("user-1")
        second = await self.manager.issue("user-1")
        other = await self.manager.issue("user-2")
        
        assert await self.manager.revoke_user_sessions("user-1") == 2
        assert await self.manager.verify(first.token) is None
        assert await self.manager.verify(second.token) is None
        assert await self.manager.verify(other.token) is not None
    
    @pytest.mark.asyncio
    async def test_wrong_secret_rejected(self):
        issued = await self.manager.issue("user-1")
        other = SessionManager(self.storage, secret="another-secret")
        assert await other.verify(issued.token) is None
    
    @pytest.mark.asyncio
    async def test_expired_token_rejected(self):
        issued = await self.manager.issue("user-1")
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"sid": issued.session.id, "sub": "user-1", "iat": past, "exp": past + timedelta(minutes=1)},
            TEST_SECRET, algorithm="HS256",
        )
        assert await self.manager.verify(token) is None
    
    @pytest.mark.asyncio
    async def test_expired_record_rejected(self):
        issued = await self.manager.issue("user-1")
        record = await self.storage.load(SESSIONS_TABLE, issued.session.id)
        record["expires_at"] = (datetime.now(timezone.utc) - timedelta(seconds=1)).isoformat()
        await self.storage.save(SESSIONS_TABLE, issued.session.id, record)
        
        assert await self.manager.verify(issued.token) is None
    
    @pytest.mark.asyncio
    async def test_subject_mismatch_rejected(self):
        issued = await self.manager.issue("user-1")
        token = jwt.encode(
            {"sid": issued.session.id, "sub": "user-2",
             "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            TEST_SECRET, algorithm="HS256",
        )
        assert await self.manager.verify(token) is None
    
    @pytest.mark.asyncio
    async def test_garbage_tokens_rejected(self):
        assert await self.manager.verify(None) is None
        assert await self.manager.verify("") is None
        assert await self.manager.verify("not.a.token") is None
        
        missing_sid = jwt.encode(
            {"sub": "user-1", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            TEST_SECRET, algorithm="HS256",
        )
        assert await self.manager.verify(missing_sid) is None
