"""
Password Hashing Module

Salted scrypt password hashes. The cost parameters are stored inside each
hash so they can be raised later without invalidating existing passwords.

Encoded form: scrypt$<n>$<r>$<p>$<salt hex>$<hash hex>
"""

import hashlib
import hmac
import secrets
from typing import Tuple

SCHEME = "scrypt"
SALT_BYTES = 16
HASH_BYTES = 64
MIN_MAXMEM = 64 * 1024 * 1024


class PasswordHasher:
    """Hashes and verifies passwords with scrypt"""
    
    def __init__(self, n: int = 16384, r: int = 8, p: int = 1):
        self.n = n
        self.r = r
        self.p = p
    
    @staticmethod
    def _derive(password: str, salt: bytes, n: int, r: int, p: int) -> bytes:
        return hashlib.scrypt(
            password.encode('utf-8'),
            salt=salt,
            n=n, r=r, p=p,
            maxmem=max(MIN_MAXMEM, 256 * n * r * p),
            dklen=HASH_BYTES
        )
    
    def hash(self, password: str) -> str:
        """Hash a password with a fresh random salt"""
        salt = secrets.token_bytes(SALT_BYTES)
        digest = self._derive(password, salt, self.n, self.r, self.p)
        return f"{SCHEME}${self.n}${self.r}${self.p}${salt.hex()}${digest.hex()}"
    
    def verify(self, password: str, encoded: str) -> bool:
        """Check a password against a stored hash; malformed hashes never verify"""
        try:
            n, r, p, salt, expected = self._parse(encoded)
        except ValueError:
            return False
        
        digest = self._derive(password, salt, n, r, p)
        return hmac.compare_digest(digest, expected)
    
    @staticmethod
    def _parse(encoded: str) -> Tuple[int, int, int, bytes, bytes]:
        if not isinstance(encoded, str):
            raise ValueError("Password hash must be a string")
        parts = encoded.split("$")
        if len(parts) != 6 or parts[0] != SCHEME:
            raise ValueError("Unrecognized password hash format")
        n, r, p = int(parts[1]), int(parts[2]), int(parts[3])
        if n < 2 or n & (n - 1) or r < 1 or p < 1:
            raise ValueError("Invalid scrypt parameters")
        return n, r, p, bytes.fromhex(parts[4]), bytes.fromhex(parts[5])
