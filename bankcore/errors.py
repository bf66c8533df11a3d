"""
Banking Core Errors

Classified errors raised by the service layer. Business-rule errors carry
enough structure for field-level feedback; InternalError never carries
internal detail.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FieldError:
    """A single field-scoped validation failure"""
    field: str
    message: str
    
    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class BankCoreError(Exception):
    """Base class for all classified banking core errors"""
    
    code = "error"
    default_message = "Request failed"
    
    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)
    
    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(BankCoreError):
    """Raised when input fails one or more validation rules"""
    
    code = "validation_error"
    default_message = "Invalid input"
    
    def __init__(self, errors: List[FieldError], message: Optional[str] = None):
        self.errors = list(errors)
        if message is None and self.errors:
            message = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(message)
    
    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["errors"] = [e.to_dict() for e in self.errors]
        return result


class DuplicateAccountError(BankCoreError):
    """User already owns an account of the requested type"""
    code = "duplicate_account"
    default_message = "Account of this type already exists"


class EmailTakenError(BankCoreError):
    """A user with this email already exists"""
    code = "email_taken"
    default_message = "User already exists"


class NotFoundError(BankCoreError):
    """Entity missing or not owned by the caller"""
    code = "not_found"
    default_message = "Not found"


class InactiveAccountError(BankCoreError):
    """Operation requires an active account"""
    code = "inactive_account"
    default_message = "Account is not active"


class InvalidCredentialsError(BankCoreError):
    """Login failed; same message for unknown email and wrong password"""
    code = "invalid_credentials"
    default_message = "Invalid credentials"
    
    def __init__(self):
        super().__init__(self.default_message)


class DecryptionError(BankCoreError):
    """Ciphertext malformed or failed authentication"""
    code = "decryption_error"
    default_message = "Failed to decrypt data"


class InternalError(BankCoreError):
    """Persistence or infrastructure fault"""
    code = "internal_error"
    default_message = "Internal error"
    
    def __init__(self):
        super().__init__(self.default_message)
