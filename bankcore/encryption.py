"""
Field Encryption Module

Provides authenticated encryption for sensitive personal fields (SSN) stored
at rest. Every call derives a fresh AES-256-GCM key from the master key and a
random salt with scrypt, so equal plaintexts never produce equal ciphertexts.

Ciphertext layout (hex encoded):
    salt (64 bytes) || iv (16 bytes) || tag (16 bytes) || ciphertext
"""

import os
import logging
from abc import ABC, abstractmethod
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .config import BankCoreConfig
from .errors import DecryptionError

logger = logging.getLogger(__name__)


SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
HEADER_LENGTH = SALT_LENGTH + IV_LENGTH + TAG_LENGTH


class EncryptionProvider(ABC):
    """Abstract base class for encryption providers"""
    
    @abstractmethod
    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext and return ciphertext"""
        pass
    
    @abstractmethod
    def decrypt(self, ciphertext: str) -> str:
        """Decrypt ciphertext and return plaintext"""
        pass


class ScryptAESGCMEncryptionProvider(EncryptionProvider):
    """AES-256-GCM with a per-call scrypt-derived key"""
    
    def __init__(self, master_key: Union[str, bytes], n: int = 16384, r: int = 8, p: int = 1):
        if not master_key:
            raise ValueError("Encryption master key must not be empty")
        
        if isinstance(master_key, str):
            master_key = master_key.encode('utf-8')
        
        self._master_key = master_key
        self.n = n
        self.r = r
        self.p = p
        logger.info("ScryptAESGCMEncryptionProvider initialized (n=%d, r=%d, p=%d)", n, r, p)
    
    def _derive_key(self, salt: bytes) -> bytes:
        kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=self.n, r=self.r, p=self.p)
        return kdf.derive(self._master_key)
    
    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext with a fresh salt and IV"""
        if not isinstance(plaintext, str):
            plaintext = str(plaintext)
        
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        key = self._derive_key(salt)
        
        # AESGCM appends the tag to the ciphertext
        sealed = AESGCM(key).encrypt(iv, plaintext.encode('utf-8'), None)
        encrypted, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        
        return (salt + iv + tag + encrypted).hex()
    
    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt ciphertext produced by encrypt().
        
        Raises:
            DecryptionError: If the input is malformed or the tag does not verify
        """
        try:
            data = bytes.fromhex(ciphertext)
        except (TypeError, ValueError):
            raise DecryptionError("Ciphertext is not valid hex")
        
        if len(data) < HEADER_LENGTH:
            raise DecryptionError("Ciphertext is truncated")
        
        salt = data[:SALT_LENGTH]
        iv = data[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
        tag = data[SALT_LENGTH + IV_LENGTH:HEADER_LENGTH]
        encrypted = data[HEADER_LENGTH:]
        
        key = self._derive_key(salt)
        try:
            decrypted = AESGCM(key).decrypt(iv, encrypted + tag, None)
        except InvalidTag:
            logger.error("Failed to decrypt data: authentication tag mismatch")
            raise DecryptionError()
        
        try:
            return decrypted.decode('utf-8')
        except UnicodeDecodeError:
            raise DecryptionError("Decrypted data is not valid UTF-8")


def create_encryption_provider(config: BankCoreConfig) -> EncryptionProvider:
    """Factory function to create the configured encryption provider"""
    return ScryptAESGCMEncryptionProvider(
        config.encryption_master_key,
        n=config.encryption_scrypt_n,
        r=config.encryption_scrypt_r,
        p=config.encryption_scrypt_p,
    )
