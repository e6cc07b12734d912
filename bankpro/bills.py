"""
Bill Management Module

Owner-scoped bills (electricity, rent, insurance, ...) that can be paid
from the owner's balance.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import ValidationError, NotFoundError
from .logging_config import get_logger, log_action
from .money import format_inr, ZERO
from .notifications import NotificationManager, NotificationType
from .transactions import TransactionStore, TransactionType
from .users import User, UserManager
from .validation import Validator


logger = get_logger("bankpro.bills")


class BillType(Enum):
    ELECTRICITY = "electricity"
    WATER = "water"
    GAS = "gas"
    INTERNET = "internet"
    PHONE = "phone"
    CABLE_TV = "cable_tv"
    INSURANCE = "insurance"
    LOAN = "loan"
    CREDIT_CARD = "credit_card"
    RENT = "rent"
    PROPERTY_TAX = "property_tax"
    VEHICLE = "vehicle"
    MEDICAL = "medical"
    EDUCATION = "education"
    OTHER = "other"


class BillStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


BILL_FREQUENCIES = ['monthly', 'quarterly', 'half-yearly', 'yearly']


def parse_date(value: Any) -> Optional[date]:
    """Accepts a date, datetime or ISO string (time part ignored)"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


@dataclass
class Bill(StorageRecord):
    user_id: str
    type: BillType
    name: str
    bill_number: str
    account_number: str
    amount: Decimal
    due_date: date
    description: Optional[str] = None
    status: BillStatus = BillStatus.PENDING
    paid_amount: Decimal = ZERO
    paid_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    is_recurring: bool = False
    frequency: str = 'monthly'

    @property
    def is_overdue(self) -> bool:
        return self.status == BillStatus.PENDING and self.due_date < datetime.now(timezone.utc).date()

    def to_public_dict(self) -> Dict[str, Any]:
        data = self.to_dict()
        data['is_overdue'] = self.is_overdue
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Bill':
        data = dict(data)
        data['type'] = BillType(data['type'])
        data['status'] = BillStatus(data['status'])
        data['amount'] = Decimal(data['amount'])
        data['paid_amount'] = Decimal(data['paid_amount'])
        data['due_date'] = parse_date(data['due_date'])
        if data.get('paid_date'):
            data['paid_date'] = datetime.fromisoformat(data['paid_date'])
        return super().from_dict(data)


class BillManager:
    """CRUD and payment for a user's bills"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 user_manager: UserManager, notifications: NotificationManager):
        self.storage = storage
        self.audit_trail = audit_trail
        self.users = user_manager
        self.notifications = notifications
        self.transaction_store = TransactionStore(storage)
        self.table_name = "bills"

    def _validate(self, fields: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """Validate bill fields, returning them converted to their stored types"""
        validator = Validator()
        clean: Dict[str, Any] = {}

        def given(key: str) -> bool:
            return not partial or fields.get(key) is not None

        if given('type'):
            validator.choice(fields.get('type'), [t.value for t in BillType], "type", "Invalid bill type")
            clean['type'] = fields.get('type')
        if given('name'):
            validator.length(fields.get('name'), "name", 1, 100, "Bill name is required")
            clean['name'] = (fields.get('name') or "").strip()
        if given('bill_number'):
            validator.required(fields.get('bill_number'), "bill_number", "Bill number is required")
            clean['bill_number'] = fields.get('bill_number')
        if given('account_number'):
            validator.required(fields.get('account_number'), "account_number", "Account number is required")
            clean['account_number'] = fields.get('account_number')
        if given('amount'):
            clean['amount'] = validator.amount(fields.get('amount'), minimum=ZERO,
                                               message="Amount cannot be negative")
        if given('due_date'):
            clean['due_date'] = parse_date(fields.get('due_date'))
            if clean['due_date'] is None:
                validator.add("due_date", "Due date is required")
        if fields.get('frequency') is not None:
            validator.choice(fields['frequency'], BILL_FREQUENCIES, "frequency", "Invalid frequency")
            clean['frequency'] = fields['frequency']
        if fields.get('status') is not None:
            validator.choice(fields['status'], [s.value for s in BillStatus], "status", "Invalid status")
            clean['status'] = fields['status']
        if fields.get('description') is not None:
            clean['description'] = fields['description']
        if fields.get('is_recurring') is not None:
            clean['is_recurring'] = bool(fields['is_recurring'])

        validator.raise_if_invalid()
        return clean

    def _load(self, user: User, bill_id: str) -> Bill:
        data = self.storage.load(self.table_name, bill_id)
        if not data or data.get('user_id') != user.id:
            raise NotFoundError("Bill not found")
        return Bill.from_dict(data)

    def _save(self, bill: Bill) -> None:
        self.storage.save(self.table_name, bill.id, bill.to_dict())

    def list_bills(self, user: User) -> List[Bill]:
        bills = [Bill.from_dict(data) for data in self.storage.find(self.table_name, {"user_id": user.id})]
        bills.sort(key=lambda b: b.due_date)
        return bills

    def get_bill(self, user: User, bill_id: str) -> Bill:
        return self._load(user, bill_id)

    def create_bill(self, user: User, fields: Dict[str, Any]) -> Bill:
        clean = self._validate(fields)
        now = datetime.now(timezone.utc)
        bill = Bill(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user.id,
            type=BillType(clean.pop('type')),
            status=BillStatus(clean.pop('status', BillStatus.PENDING.value)),
            **clean
        )
        self._save(bill)
        return bill

    def update_bill(self, user: User, bill_id: str, fields: Dict[str, Any]) -> Bill:
        bill = self._load(user, bill_id)
        clean = self._validate(fields, partial=True)
        if 'type' in clean:
            clean['type'] = BillType(clean['type'])
        if 'status' in clean:
            clean['status'] = BillStatus(clean['status'])
        for key, value in clean.items():
            setattr(bill, key, value)
        bill.updated_at = datetime.now(timezone.utc)
        self._save(bill)
        return bill

    def delete_bill(self, user: User, bill_id: str) -> Bill:
        bill = self._load(user, bill_id)
        self.storage.delete(self.table_name, bill.id)
        return bill

    def pay_bill(self, user: User, bill_id: str) -> Bill:
        """
        Pay a bill from the owner's balance, recording a bill_payment debit
        """
        with self.storage.atomic():
            bill = self._load(user, bill_id)
            if bill.status == BillStatus.PAID:
                raise ValidationError("Bill is already paid")
            if bill.status == BillStatus.CANCELLED:
                raise ValidationError("Bill is cancelled")

            owner = self.users.require_user(user.id)
            transaction = None
            # A zero bill is settled without a ledger entry
            if bill.amount > ZERO:
                if owner.balance < bill.amount:
                    raise ValidationError("Insufficient balance")
                owner.balance -= bill.amount
                self.users.save_user(owner)

                transaction = self.transaction_store.new(
                    user_id=owner.id,
                    transaction_type=TransactionType.DEBIT,
                    amount=bill.amount,
                    balance=owner.balance,
                    description=f"Bill payment: {bill.name}"[:200],
                    category='bill_payment',
                    bill_id=bill.id,
                    recipient_account=bill.account_number,
                    recipient_name=bill.name,
                )

            bill.status = BillStatus.PAID
            bill.paid_amount = bill.amount
            bill.paid_date = datetime.now(timezone.utc)
            bill.transaction_id = transaction.id if transaction else None
            bill.updated_at = bill.paid_date
            self._save(bill)

            self.notifications.notify(
                owner.id, NotificationType.PAYMENT,
                f"{bill.name} bill of {format_inr(bill.amount)} paid successfully"
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.BILL_PAID,
                entity_type="bill",
                entity_id=bill.id,
                user_id=owner.id,
                metadata={"amount": bill.amount, "transaction_id": bill.transaction_id}
            )

        log_action(logger, "info", "Bill paid", user_id=user.id, action="pay_bill", resource=bill.id)
        return bill
