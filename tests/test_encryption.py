"""
Tests for field encryption at rest
"""

import pytest

from bankcore.config import BankCoreConfig
from bankcore.encryption import (
    HEADER_LENGTH, SALT_LENGTH, ScryptAESGCMEncryptionProvider, create_encryption_provider,
)
from bankcore.errors import DecryptionError


class TestScryptAESGCMEncryptionProvider:
    """Test scrypt-derived AES-256-GCM encryption"""
    
    def setup_method(self):
        self.provider = ScryptAESGCMEncryptionProvider("test-master-key", n=1024, r=8, p=1)
    
    def test_encrypt_decrypt_roundtrip(self):
        encrypted = self.provider.encrypt("123456789")
        assert encrypted != "123456789"
        assert self.provider.decrypt(encrypted) == "123456789"
    
    def test_unicode_roundtrip(self):
        original = "Zoë Ångström 日本"
        assert self.provider.decrypt(self.provider.encrypt(original)) == original
    
    def test_same_plaintext_different_ciphertexts(self):
        first = self.provider.encrypt("123456789")
        second = self.provider.encrypt("123456789")
        assert first != second
        # Fresh salt per call
        assert first[:SALT_LENGTH * 2] != second[:SALT_LENGTH * 2]
    
    def test_ciphertext_layout(self):
        encrypted = self.provider.encrypt("123456789")
        raw = bytes.fromhex(encrypted)
        assert len(raw) == HEADER_LENGTH + len("123456789")
    
    def test_tampered_ciphertext_fails(self):
        raw = bytearray(bytes.fromhex(self.provider.encrypt("123456789")))
        raw[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            self.provider.decrypt(bytes(raw).hex())
    
    def test_tampered_tag_fails(self):
        raw = bytearray(bytes.fromhex(self.provider.encrypt("123456789")))
        raw[HEADER_LENGTH - 1] ^= 0x01
        with pytest.raises(DecryptionError):
            self.provider.decrypt(bytes(raw).hex())
    
    def test_wrong_key_fails(self):
        encrypted = self.provider.encrypt("123456789")
        other = ScryptAESGCMEncryptionProvider("another-key", n=1024, r=8, p=1)
        with pytest.raises(DecryptionError):
            other.decrypt(encrypted)
    
    def test_truncated_ciphertext_fails(self):
        encrypted = self.provider.encrypt("123456789")
        with pytest.raises(DecryptionError):
            self.provider.decrypt(encrypted[:HEADER_LENGTH])
    
    def test_non_hex_fails(self):
        with pytest.raises(DecryptionError):
            self.provider.decrypt("not-hex-at-all")
    
    def test_empty_master_key_rejected(self):
        with pytest.raises(ValueError):
            ScryptAESGCMEncryptionProvider("")
    
    def test_bytes_master_key(self):
        provider = ScryptAESGCMEncryptionProvider(b"test-master-key", n=1024, r=8, p=1)
        assert self.provider.decrypt(provider.encrypt("secret")) == "secret"


class TestEncryptionFactory:
    """Test building the provider from configuration"""
    
    def test_create_from_config(self):
        config = BankCoreConfig(
            encryption_master_key="factory-key",
            encryption_scrypt_n=1024,
        )
        provider = create_encryption_provider(config)
        assert isinstance(provider, ScryptAESGCMEncryptionProvider)
        assert provider.n == 1024
        assert provider.decrypt(provider.encrypt("value")) == "value"
