"""
Transaction Records Module

Append-only ledger entries for account funding, the transient funding source
submitted with a deposit, and the page type returned by history queries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .currency import Money, Currency
from .storage import StorageRecord


class TransactionType(Enum):
    """Direction of a ledger entry"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class TransactionStatus(Enum):
    """Processing state of a ledger entry"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class FundingSourceType(Enum):
    """Where deposited funds come from"""
    CARD = "card"
    BANK = "bank"


@dataclass(frozen=True)
class FundingSource:
    """
    Card or bank account supplying a deposit. Validated per request and never
    persisted.
    """
    type: FundingSourceType
    account_number: str
    routing_number: Optional[str] = None

    @property
    def masked_number(self) -> str:
        """Last four digits, safe for logs"""
        return f"****{self.account_number[-4:]}"


@dataclass
class Transaction(StorageRecord):
    """Immutable ledger entry belonging to one account"""
    account_id: str
    type: TransactionType
    amount: Money
    status: TransactionStatus = TransactionStatus.COMPLETED
    description: Optional[str] = None
    # Display annotation filled in by history queries, never stored
    account_type: Optional[str] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert Transaction to dictionary for storage"""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "account_id": self.account_id,
            "type": self.type.value,
            "amount": str(self.amount.amount),
            "currency": self.amount.currency.code,
            "status": self.status.value,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], account_type: Optional[str] = None) -> 'Transaction':
        """Convert dictionary to Transaction"""
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_id=data['account_id'],
            type=TransactionType(data['type']),
            amount=Money(Decimal(data['amount']), Currency[data.get('currency', 'USD')]),
            status=TransactionStatus(data['status']),
            description=data.get('description'),
            account_type=account_type,
        )


@dataclass
class TransactionPage:
    """One page of transaction history, newest first"""
    items: List[Transaction]
    next_cursor: Optional[int] = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None
