"""
Shared fixtures for the banking core tests

Scrypt costs are kept low so the suite stays fast; production defaults are
exercised through the config tests only.
"""

from datetime import date

import pytest

from bankcore.async_storage import AsyncInMemoryStorage
from bankcore.accounts import AccountService
from bankcore.auth import AuthService
from bankcore.encryption import ScryptAESGCMEncryptionProvider
from bankcore.passwords import PasswordHasher
from bankcore.sessions import SessionManager

TODAY = date(2024, 6, 15)
TEST_SECRET = "test-signing-secret"


def signup_payload(**overrides):
    payload = {
        "email": "Jane.Doe@Example.com",
        "password": "Str0ng!Pass",
        "confirm_password": "Str0ng!Pass",
        "first_name": "Jane",
        "last_name": "Doe",
        "phone_number": "(650) 253-0000",
        "date_of_birth": "1990-05-15",
        "ssn": "123456789",
        "address": "1600 Amphitheatre Pkwy",
        "city": "Mountain View",
        "state": "ca",
        "zip_code": "94043",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def storage():
    return AsyncInMemoryStorage()


@pytest.fixture
def encryption():
    return ScryptAESGCMEncryptionProvider("test-master-key", n=1024, r=8, p=1)


@pytest.fixture
def password_hasher():
    return PasswordHasher(n=1024, r=8, p=1)


@pytest.fixture
def sessions(storage):
    return SessionManager(storage, secret=TEST_SECRET, expiry_hours=1)


@pytest.fixture
def auth_service(storage, encryption, password_hasher, sessions):
    return AuthService(storage, encryption, password_hasher, sessions)


@pytest.fixture
def account_service(storage):
    return AccountService(storage)
