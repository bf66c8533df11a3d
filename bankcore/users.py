"""
User Records Module

The persisted identity record and the public view handed back to callers.
The SSN is only ever stored encrypted; neither it nor the password hash
appears in a UserView.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict

from .storage import StorageRecord


@dataclass
class User(StorageRecord):
    """Identity record created at signup"""
    email: str
    password_hash: str
    first_name: str
    last_name: str
    phone_number: str
    date_of_birth: date
    ssn_encrypted: str
    address: str
    city: str
    state: str
    zip_code: str
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert User to dictionary for storage"""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "email": self.email,
            "password_hash": self.password_hash,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone_number": self.phone_number,
            "date_of_birth": self.date_of_birth.isoformat(),
            "ssn_encrypted": self.ssn_encrypted,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        """Convert dictionary to User"""
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            email=data['email'],
            password_hash=data['password_hash'],
            first_name=data['first_name'],
            last_name=data['last_name'],
            phone_number=data['phone_number'],
            date_of_birth=date.fromisoformat(data['date_of_birth']),
            ssn_encrypted=data['ssn_encrypted'],
            address=data['address'],
            city=data['city'],
            state=data['state'],
            zip_code=data['zip_code'],
        )
    
    def to_view(self) -> 'UserView':
        return UserView(
            id=self.id,
            created_at=self.created_at,
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
            phone_number=self.phone_number,
            date_of_birth=self.date_of_birth,
            address=self.address,
            city=self.city,
            state=self.state,
            zip_code=self.zip_code,
        )


@dataclass(frozen=True)
class UserView:
    """Caller-facing projection of a User"""
    id: str
    created_at: datetime
    email: str
    first_name: str
    last_name: str
    phone_number: str
    date_of_birth: date
    address: str
    city: str
    state: str
    zip_code: str
