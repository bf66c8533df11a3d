"""
Account Management Module

Account lifecycle, deposits and transaction history. Each user holds at most
one account per account type; account numbers are random digits re-drawn
until globally unique. Deposits write the ledger entry and the new balance in
one unit of work.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import logging
import secrets
import uuid

from .async_storage import AsyncStorageInterface
from .currency import Money, Currency
from .errors import (
    BankCoreError, DuplicateAccountError, FieldError, InactiveAccountError, InternalError,
    NotFoundError, ValidationError,
)
from .logging_config import log_action
from .storage import StorageRecord
from .transactions import Transaction, TransactionPage, TransactionStatus, TransactionType
from .validation import validate_funding, validate_page

logger = logging.getLogger(__name__)

ACCOUNTS_TABLE = "accounts"
TRANSACTIONS_TABLE = "transactions"


class AccountType(Enum):
    """Account products a user can open"""
    CHECKING = "checking"
    SAVINGS = "savings"


class AccountStatus(Enum):
    """Account lifecycle states"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    FROZEN = "frozen"
    CLOSED = "closed"


@dataclass
class Account(StorageRecord):
    """Deposit account owned by one user"""
    user_id: str
    account_type: AccountType
    account_number: str
    status: AccountStatus = AccountStatus.ACTIVE
    balance: Money = Money.zero()

    def can_transact(self) -> bool:
        """Check if account can process transactions"""
        return self.status == AccountStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert Account to dictionary for storage"""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "user_id": self.user_id,
            "account_type": self.account_type.value,
            "account_number": self.account_number,
            "status": self.status.value,
            "balance": str(self.balance.amount),
            "currency": self.balance.currency.code,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        """Convert dictionary to Account"""
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            user_id=data['user_id'],
            account_type=AccountType(data['account_type']),
            account_number=data['account_number'],
            status=AccountStatus(data['status']),
            balance=Money(Decimal(data['balance']), Currency[data.get('currency', 'USD')]),
        )


class AccountService:
    """
    Account operations on behalf of an authenticated user.

    Every operation takes the caller's user id; accounts owned by anyone else
    are reported as not found.
    """

    def __init__(self, storage: AsyncStorageInterface, account_number_digits: int = 10,
                 max_page_size: int = 100):
        self.storage = storage
        self.account_number_digits = account_number_digits
        self.max_page_size = max_page_size

    def _generate_account_number(self) -> str:
        """Random fixed-width digit string"""
        return str(secrets.randbelow(10 ** self.account_number_digits)).zfill(self.account_number_digits)

    async def _unused_account_number(self) -> str:
        """Draw numbers until one is not taken. No lock is held between draws."""
        attempts = 0
        while True:
            attempts += 1
            candidate = self._generate_account_number()
            taken = await self.storage.find_one(ACCOUNTS_TABLE, {"account_number": candidate})
            if not taken:
                if attempts > 1:
                    logger.info("Account number found after %d attempts", attempts)
                return candidate

    async def _find_by_type(self, user_id: str, account_type: AccountType) -> Optional[Dict[str, Any]]:
        return await self.storage.find_one(
            ACCOUNTS_TABLE, {"user_id": user_id, "account_type": account_type.value}
        )

    async def create_account(self, user_id: str, account_type: AccountType) -> Account:
        """
        Open an account of the given type for the user.

        Raises:
            DuplicateAccountError: If the user already has an account of this type
        """
        try:
            account_type = AccountType(account_type)
        except ValueError:
            raise ValidationError([FieldError("account_type", "Account type must be checking or savings")])

        try:
            if await self._find_by_type(user_id, account_type):
                raise DuplicateAccountError()

            while True:
                account_number = await self._unused_account_number()

                async with self.storage.atomic():
                    # Re-check inside the unit so concurrent creates cannot both pass
                    if await self._find_by_type(user_id, account_type):
                        raise DuplicateAccountError()
                    if await self.storage.find_one(ACCOUNTS_TABLE, {"account_number": account_number}):
                        continue

                    now = datetime.now(timezone.utc)
                    account = Account(
                        id=str(uuid.uuid4()),
                        created_at=now,
                        updated_at=now,
                        user_id=user_id,
                        account_type=account_type,
                        account_number=account_number,
                    )
                    await self.storage.save(ACCOUNTS_TABLE, account.id, account.to_dict())
                    break
        except BankCoreError:
            raise
        except Exception as e:
            logger.exception("Account creation failed")
            raise InternalError() from e

        log_action(logger, "info", "Account created", user_id=user_id,
                   action="create_account", resource=account.id,
                   details={"account_type": account_type.value})
        return account

    async def list_accounts(self, user_id: str) -> List[Account]:
        """All of the user's accounts in creation order"""
        try:
            records = await self.storage.find_page(
                ACCOUNTS_TABLE, {"user_id": user_id}, order_by="created_at"
            )
        except Exception as e:
            logger.exception("Listing accounts failed")
            raise InternalError() from e
        return [Account.from_dict(data) for data in records]

    async def _load_owned(self, user_id: str, account_id: str) -> Account:
        data = await self.storage.load(ACCOUNTS_TABLE, account_id)
        if not data or data.get("user_id") != user_id:
            raise NotFoundError("Account not found")
        return Account.from_dict(data)

    async def get_account(self, user_id: str, account_id: str) -> Account:
        """
        Raises:
            NotFoundError: If the account is missing or belongs to another user
        """
        try:
            return await self._load_owned(user_id, account_id)
        except BankCoreError:
            raise
        except Exception as e:
            logger.exception("Loading account failed")
            raise InternalError() from e

    async def fund_account(self, user_id: str, account_id: str, amount: Any,
                           funding_source: Any, description: Optional[str] = None) -> Transaction:
        """
        Deposit funds into an active account.

        The amount and funding source are validated before anything is read
        or written. The deposit record and the new balance are saved together.

        Raises:
            ValidationError: Amount not positive or funding source invalid
            NotFoundError: Account missing or owned by another user
            InactiveAccountError: Account status is not active
        """
        request = validate_funding(amount, funding_source, description).raise_for_errors()

        try:
            async with self.storage.atomic():
                account = await self._load_owned(user_id, account_id)
                if not account.can_transact():
                    raise InactiveAccountError()

                now = datetime.now(timezone.utc)
                transaction = Transaction(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    account_id=account.id,
                    type=TransactionType.DEPOSIT,
                    amount=request.amount,
                    status=TransactionStatus.COMPLETED,
                    description=request.description or f"Funding from {request.source.type.value}",
                    account_type=account.account_type.value,
                )
                account.balance = account.balance + request.amount
                account.updated_at = now

                await self.storage.save_many([
                    (TRANSACTIONS_TABLE, transaction.id, transaction.to_dict()),
                    (ACCOUNTS_TABLE, account.id, account.to_dict()),
                ])
        except BankCoreError:
            raise
        except Exception as e:
            logger.exception("Funding failed")
            raise InternalError() from e

        log_action(logger, "info", "Account funded", user_id=user_id,
                   action="fund_account", resource=account.id,
                   details={
                       "transaction_id": transaction.id,
                       "amount": str(request.amount.amount),
                       "source": request.source.type.value,
                       "source_number": request.source.masked_number,
                   })
        return transaction

    async def list_transactions(self, user_id: str, account_id: str,
                                limit: int = 10, cursor: int = 0) -> TransactionPage:
        """
        One page of the account's history, newest first.

        One extra row is requested to learn whether another page exists;
        next_cursor is None on the last page.

        Raises:
            ValidationError: limit or cursor out of range
            NotFoundError: Account missing or owned by another user
        """
        limit, cursor = validate_page(limit, cursor, self.max_page_size).raise_for_errors()

        try:
            account = await self._load_owned(user_id, account_id)
            rows = await self.storage.find_page(
                TRANSACTIONS_TABLE, {"account_id": account.id},
                order_by="created_at", descending=True,
                limit=limit + 1, offset=cursor,
            )
        except BankCoreError:
            raise
        except Exception as e:
            logger.exception("Listing transactions failed")
            raise InternalError() from e

        has_more = len(rows) > limit
        items = [
            Transaction.from_dict(data, account_type=account.account_type.value)
            for data in rows[:limit]
        ]
        next_cursor = cursor + len(items) if has_more else None
        return TransactionPage(items=items, next_cursor=next_cursor)
