"""
Transaction Records Module

The Transaction record, its enums and category list, and TransactionStore
which persists records and answers the list/stats queries. Balance effects
live in processor.py.
"""

from decimal import Decimal
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
import secrets
import string
import time
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime
from .money import to_money, ZERO
from .errors import ValidationError


class TransactionType(Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    TRANSFER = "transfer"


class TransferType(Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"
    FEE = "fee"


class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


CATEGORIES = [
    'deposit', 'withdrawal', 'transfer', 'bill_payment', 'shopping',
    'food', 'transport', 'transportation', 'entertainment', 'utilities',
    'salary', 'healthcare', 'investment', 'loan', 'fee', 'interest', 'other'
]

# Published by GET /api/transactions/categories
LISTED_CATEGORIES = [
    'deposit', 'withdrawal', 'transfer', 'bill_payment', 'shopping',
    'food', 'transport', 'entertainment', 'utilities', 'salary',
    'investment', 'loan', 'fee', 'interest', 'other'
]

STATS_PERIODS = {
    'week': timedelta(days=7),
    'month': timedelta(days=30),
    'year': timedelta(days=365),
}

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference() -> str:
    """'TXN' + millisecond timestamp + 5 random characters"""
    suffix = ''.join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(5))
    return f"TXN{int(time.time() * 1000)}{suffix}"


@dataclass
class Transaction(StorageRecord):
    """
    One entry in a user's statement. ``balance`` is the owner's balance
    immediately after the transaction was applied.
    """
    user_id: str
    type: TransactionType
    amount: Decimal
    balance: Decimal
    description: str
    reference: str
    category: str = 'other'
    status: TransactionStatus = TransactionStatus.COMPLETED
    transfer_type: Optional[TransferType] = None
    recipient_id: Optional[str] = None
    recipient_account: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_bank: Optional[Dict[str, str]] = None
    bill_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        data = dict(data)
        data['type'] = TransactionType(data['type'])
        data['status'] = TransactionStatus(data['status'])
        if data.get('transfer_type'):
            data['transfer_type'] = TransferType(data['transfer_type'])
        data['amount'] = Decimal(data['amount'])
        data['balance'] = Decimal(data['balance'])
        return super().from_dict(data)

    def to_public_dict(self) -> Dict[str, Any]:
        return self.to_dict()


def _parse_filter_date(value: Optional[str], field: str) -> Optional[datetime]:
    try:
        return parse_datetime(value)
    except ValueError:
        message = f"Invalid {field}"
        raise ValidationError(message, details={"details": [{"field": field, "msg": message}]})


class TransactionStore:
    """Persistence and queries for transaction records"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "transactions"

    def new(
        self,
        user_id: str,
        transaction_type: TransactionType,
        amount: Decimal,
        balance: Decimal,
        description: str,
        category: str = 'other',
        **fields: Any
    ) -> Transaction:
        """Build and save a completed transaction"""
        now = datetime.now(timezone.utc)
        reference = generate_reference()
        while self.storage.find(self.table_name, {"reference": reference}):
            reference = generate_reference()

        transaction = Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            type=transaction_type,
            amount=to_money(amount),
            balance=to_money(balance),
            description=description,
            reference=reference,
            category=category or 'other',
            **fields
        )
        self.save(transaction)
        return transaction

    def save(self, transaction: Transaction) -> None:
        self.storage.save(self.table_name, transaction.id, transaction.to_dict())

    def get(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.table_name, transaction_id)
        if data:
            return Transaction.from_dict(data)
        return None

    def delete(self, transaction_id: str) -> bool:
        return self.storage.delete(self.table_name, transaction_id)

    def for_user(self, user_id: str) -> List[Transaction]:
        """All of a user's transactions, newest first"""
        transactions = [
            Transaction.from_dict(data)
            for data in self.storage.find(self.table_name, {"user_id": user_id})
        ]
        transactions.sort(key=lambda t: t.created_at, reverse=True)
        return transactions

    def query(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        transaction_type: Optional[str] = None,
        category: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
    ) -> Tuple[List[Transaction], Dict[str, int]]:
        """
        Paginated statement query, newest first.

        The category filter does not apply when filtering by credit.
        """
        page = max(page, 1)
        limit = min(max(limit, 1), 100)

        transactions = self.for_user(user_id)
        if transaction_type:
            transactions = [t for t in transactions if t.type.value == transaction_type]
        if category and transaction_type != TransactionType.CREDIT.value:
            transactions = [t for t in transactions if t.category == category]
        start = _parse_filter_date(start_date, "start_date")
        end = _parse_filter_date(end_date, "end_date")
        if start:
            transactions = [t for t in transactions if t.created_at >= start]
        if end:
            transactions = [t for t in transactions if t.created_at <= end]

        total = len(transactions)
        offset = (page - 1) * limit
        pagination = {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        }
        return transactions[offset:offset + limit], pagination

    def stats(self, user_id: str, period: str = 'month') -> Dict[str, Any]:
        since = datetime.now(timezone.utc) - STATS_PERIODS.get(period, STATS_PERIODS['month'])
        transactions = [t for t in self.for_user(user_id) if t.created_at >= since]

        total_credits = sum((t.amount for t in transactions if t.type == TransactionType.CREDIT), ZERO)
        total_debits = sum((t.amount for t in transactions if t.type != TransactionType.CREDIT), ZERO)

        categories: Dict[str, Dict[str, Any]] = {}
        for transaction in transactions:
            if transaction.type == TransactionType.CREDIT:
                continue
            entry = categories.setdefault(transaction.category, {"category": transaction.category,
                                                                 "total": ZERO, "count": 0})
            entry["total"] += transaction.amount
            entry["count"] += 1

        return {
            "period": period if period in STATS_PERIODS else 'month',
            "total_credits": total_credits,
            "total_debits": total_debits,
            "transaction_count": len(transactions),
            "categories": sorted(categories.values(), key=lambda c: c["total"], reverse=True),
        }

    def delete_for_user(self, user_id: str) -> int:
        removed = 0
        for data in self.storage.find(self.table_name, {"user_id": user_id}):
            if self.storage.delete(self.table_name, data["id"]):
                removed += 1
        return removed
