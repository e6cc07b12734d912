"""
Recurring Payments Module

Scheduled payments (subscriptions, loan instalments, savings transfers)
with a due date that advances by the payment's frequency.
"""

from decimal import Decimal
from datetime import datetime, timezone, date, timedelta
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
import calendar
import uuid

from .storage import StorageInterface, StorageRecord
from .bills import parse_date
from .errors import ValidationError, NotFoundError
from .money import ZERO
from .users import User
from .validation import Validator


class PaymentType(Enum):
    BILL_PAYMENT = "bill_payment"
    SUBSCRIPTION = "subscription"
    LOAN_PAYMENT = "loan_payment"
    INSURANCE = "insurance"
    INVESTMENT = "investment"
    SAVINGS = "savings"
    OTHER = "other"


class PaymentFrequency(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    HALF_YEARLY = "half-yearly"
    YEARLY = "yearly"


class RecurringStatus(Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


_DAY_STEPS = {
    PaymentFrequency.DAILY: 1,
    PaymentFrequency.WEEKLY: 7,
    PaymentFrequency.BI_WEEKLY: 14,
}

_MONTH_STEPS = {
    PaymentFrequency.MONTHLY: 1,
    PaymentFrequency.QUARTERLY: 3,
    PaymentFrequency.HALF_YEARLY: 6,
    PaymentFrequency.YEARLY: 12,
}


def add_months(start: date, months: int) -> date:
    """Same day ``months`` later, clamped to the last day of a shorter month"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def advance_due_date(due: date, frequency: PaymentFrequency) -> date:
    """Next due date after ``due`` for the given frequency"""
    if frequency in _DAY_STEPS:
        return due + timedelta(days=_DAY_STEPS[frequency])
    return add_months(due, _MONTH_STEPS[frequency])


@dataclass
class RecurringPayment(StorageRecord):
    user_id: str
    name: str
    type: PaymentType
    amount: Decimal
    frequency: PaymentFrequency
    start_date: date
    next_due_date: date
    to_account: str
    beneficiary_name: str
    description: Optional[str] = None
    end_date: Optional[date] = None
    status: RecurringStatus = RecurringStatus.ACTIVE
    is_auto_pay: bool = False
    payment_history: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecurringPayment':
        data = dict(data)
        data['type'] = PaymentType(data['type'])
        data['frequency'] = PaymentFrequency(data['frequency'])
        data['status'] = RecurringStatus(data['status'])
        data['amount'] = Decimal(data['amount'])
        data['start_date'] = parse_date(data['start_date'])
        data['next_due_date'] = parse_date(data['next_due_date'])
        data['end_date'] = parse_date(data.get('end_date'))
        return super().from_dict(data)


class RecurringPaymentManager:
    """Owner-scoped CRUD for recurring payments"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "recurring_payments"

    def _validate(self, fields: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        validator = Validator()
        clean: Dict[str, Any] = {}

        def given(key: str) -> bool:
            return not partial or fields.get(key) is not None

        if given('name'):
            validator.length(fields.get('name'), "name", 1, 100, "Payment name is required")
            clean['name'] = (fields.get('name') or "").strip()
        if given('type'):
            validator.choice(fields.get('type'), [t.value for t in PaymentType], "type",
                             "Invalid payment type")
            clean['type'] = fields.get('type')
        if given('amount'):
            clean['amount'] = validator.amount(fields.get('amount'), minimum=ZERO,
                                               message="Amount cannot be negative")
        if given('frequency'):
            validator.choice(fields.get('frequency'), [f.value for f in PaymentFrequency],
                             "frequency", "Invalid frequency")
            clean['frequency'] = fields.get('frequency')
        if given('start_date'):
            clean['start_date'] = parse_date(fields.get('start_date'))
            if clean['start_date'] is None:
                validator.add("start_date", "Start date is required")
        if given('to_account'):
            validator.required(fields.get('to_account'), "to_account", "Destination account is required")
            clean['to_account'] = fields.get('to_account')
        if given('beneficiary_name'):
            validator.required(fields.get('beneficiary_name'), "beneficiary_name",
                               "Beneficiary name is required")
            clean['beneficiary_name'] = fields.get('beneficiary_name')
        for key in ('end_date', 'next_due_date'):
            if fields.get(key) is not None:
                clean[key] = parse_date(fields[key])
                if clean[key] is None:
                    validator.add(key, "Invalid date")
        if fields.get('status') is not None:
            validator.choice(fields['status'], [s.value for s in RecurringStatus], "status",
                             "Invalid status")
            clean['status'] = fields['status']
        if fields.get('description') is not None:
            clean['description'] = fields['description']
        if fields.get('is_auto_pay') is not None:
            clean['is_auto_pay'] = bool(fields['is_auto_pay'])

        validator.raise_if_invalid()

        start = clean.get('start_date')
        end = clean.get('end_date')
        if start and end and end < start:
            raise ValidationError("End date cannot be before start date")

        for key, enum_type in (('type', PaymentType), ('frequency', PaymentFrequency),
                               ('status', RecurringStatus)):
            if key in clean:
                clean[key] = enum_type(clean[key])
        return clean

    def _load(self, user: User, payment_id: str) -> RecurringPayment:
        data = self.storage.load(self.table_name, payment_id)
        if not data or data.get('user_id') != user.id:
            raise NotFoundError("Recurring payment not found")
        return RecurringPayment.from_dict(data)

    def _save(self, payment: RecurringPayment) -> None:
        payment.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, payment.id, payment.to_dict())

    def list_payments(self, user: User) -> List[RecurringPayment]:
        payments = [
            RecurringPayment.from_dict(data)
            for data in self.storage.find(self.table_name, {"user_id": user.id})
        ]
        payments.sort(key=lambda p: p.next_due_date)
        return payments

    def create_payment(self, user: User, fields: Dict[str, Any]) -> RecurringPayment:
        clean = self._validate(fields)
        clean.setdefault('next_due_date', clean['start_date'])
        now = datetime.now(timezone.utc)
        payment = RecurringPayment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user.id,
            **clean
        )
        self._save(payment)
        return payment

    def update_payment(self, user: User, payment_id: str, fields: Dict[str, Any]) -> RecurringPayment:
        payment = self._load(user, payment_id)
        clean = self._validate(fields, partial=True)
        for key, value in clean.items():
            setattr(payment, key, value)
        if payment.end_date and payment.end_date < payment.start_date:
            raise ValidationError("End date cannot be before start date")
        self._save(payment)
        return payment

    def delete_payment(self, user: User, payment_id: str) -> RecurringPayment:
        payment = self._load(user, payment_id)
        self.storage.delete(self.table_name, payment.id)
        return payment

    def record_payment(self, user: User, payment_id: str) -> RecurringPayment:
        """
        Record that the current instalment was paid and move the due date on.

        The payment completes once the next due date passes its end date.
        """
        payment = self._load(user, payment_id)
        if payment.status != RecurringStatus.ACTIVE:
            raise ValidationError("Recurring payment is not active")

        payment.payment_history.append({
            "amount": str(payment.amount),
            "date": datetime.now(timezone.utc).isoformat(),
            "due_date": payment.next_due_date.isoformat(),
            "status": "success",
            "notes": f"Payment for {payment.name}",
        })
        payment.next_due_date = advance_due_date(payment.next_due_date, payment.frequency)
        if payment.end_date and payment.next_due_date > payment.end_date:
            payment.status = RecurringStatus.COMPLETED
        self._save(payment)
        return payment
