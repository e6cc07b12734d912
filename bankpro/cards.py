"""
Card Management Module

Debit and credit cards attached to a user's account. Card numbers are
brand-prefixed and Luhn-valid; CVVs are stored Fernet-encrypted and
PINs scrypt-hashed.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
import secrets
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import ValidationError, PermissionDenied, NotFoundError
from .money import to_money, ZERO
from .security import CardCipher, generate_salt, hash_secret, verify_secret
from .users import User
from .validation import Validator


class CardType(Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class CardBrand(Enum):
    VISA = "visa"
    MASTERCARD = "mastercard"
    RUPAY = "rupay"
    AMEX = "amex"


class CardStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"
    EXPIRED = "expired"
    LOST = "lost"
    CLOSED = "closed"


BRAND_PREFIXES = {
    CardBrand.VISA: "4",
    CardBrand.MASTERCARD: "5",
    CardBrand.AMEX: "3",
    CardBrand.RUPAY: "6",
}

CARD_VALIDITY_YEARS = 3


def luhn_check_digit(partial: str) -> str:
    """Check digit that makes ``partial + digit`` pass the Luhn test"""
    total = 0
    for index, char in enumerate(reversed(partial)):
        digit = int(char)
        if index % 2 == 0:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return str((10 - total % 10) % 10)


def luhn_valid(number: str) -> bool:
    return number.isdigit() and luhn_check_digit(number[:-1]) == number[-1]


def generate_card_number(brand: CardBrand) -> str:
    body = BRAND_PREFIXES[brand] + ''.join(str(secrets.randbelow(10)) for _ in range(14))
    return body + luhn_check_digit(body)


@dataclass
class Card(StorageRecord):
    user_id: str
    account_number: str
    card_number: str
    card_type: CardType
    card_brand: CardBrand
    card_name: str
    expiry_month: int
    expiry_year: int
    cvv: str  # encrypted
    pin_hash: Optional[str] = None
    pin_salt: Optional[str] = None
    status: CardStatus = CardStatus.ACTIVE
    credit_limit: Decimal = ZERO
    available_credit: Decimal = ZERO

    @property
    def expiry_date(self) -> str:
        return f"{self.expiry_month:02d}/{self.expiry_year}"

    @property
    def is_expired(self) -> bool:
        now = datetime.now(timezone.utc)
        return (now.year, now.month) > (self.expiry_year, self.expiry_month)

    @property
    def has_pin(self) -> bool:
        return bool(self.pin_hash)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Card':
        data = dict(data)
        data['card_type'] = CardType(data['card_type'])
        data['card_brand'] = CardBrand(data['card_brand'])
        data['status'] = CardStatus(data['status'])
        data['credit_limit'] = Decimal(data['credit_limit'])
        data['available_credit'] = Decimal(data['available_credit'])
        return super().from_dict(data)


class CardManager:
    """Issues cards and manages PINs and status"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail, cipher: CardCipher):
        self.storage = storage
        self.audit_trail = audit_trail
        self.cipher = cipher
        self.table_name = "cards"

    def to_public_dict(self, card: Card, include_cvv: bool = True) -> Dict[str, Any]:
        """Card as returned to its owner; the PIN hash never leaves the server"""
        data = card.to_dict()
        data.pop('pin_hash', None)
        data.pop('pin_salt', None)
        data['has_pin'] = card.has_pin
        data['expiry_date'] = card.expiry_date
        if include_cvv:
            try:
                data['cvv'] = self.cipher.decrypt(card.cvv)
            except ValueError:
                data['cvv'] = None
        else:
            data.pop('cvv', None)
        return data

    def _load(self, card_id: str) -> Card:
        data = self.storage.load(self.table_name, card_id)
        if not data:
            raise NotFoundError("Card not found")
        return Card.from_dict(data)

    def _load_for_update(self, actor: User, card_id: str) -> Card:
        card = self._load(card_id)
        if card.user_id != actor.id and not actor.is_admin:
            raise PermissionDenied("Not authorized to update this card")
        return card

    def _save(self, card: Card) -> None:
        card.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, card.id, card.to_dict())

    def list_cards(self, user: User) -> List[Card]:
        """User's cards except closed ones, newest first"""
        cards = [
            Card.from_dict(data)
            for data in self.storage.find(self.table_name, {"user_id": user.id})
            if data.get("status") != CardStatus.CLOSED.value
        ]
        cards.sort(key=lambda c: c.created_at, reverse=True)
        return cards

    def create_card(self, user: User, card_type: str, card_brand: str, card_name: str,
                    pin: Optional[str] = None, credit_limit: Any = None) -> Tuple[Card, str]:
        """
        Issue a new card valid for three years.

        Returns:
            (card, cvv) where cvv is the plaintext CVV shown to the user once
        """
        validator = Validator()
        validator.choice(card_type, [t.value for t in CardType], "card_type", "Invalid card type")
        validator.choice(card_brand, [b.value for b in CardBrand], "card_brand", "Invalid card brand")
        validator.length(card_name, "card_name", 1, 50,
                         "Card name is required and must be less than 50 characters")
        if pin:
            validator.pin(pin)
        limit = ZERO
        if credit_limit not in (None, ""):
            limit = validator.amount(credit_limit, "credit_limit", minimum=ZERO,
                                     message="Credit limit must be a positive number")
        validator.raise_if_invalid()

        kind = CardType(card_type)
        brand = CardBrand(card_brand)
        card_number = generate_card_number(brand)
        while self.storage.find(self.table_name, {"card_number": card_number}):
            card_number = generate_card_number(brand)

        cvv = f"{secrets.randbelow(900) + 100:03d}"
        now = datetime.now(timezone.utc)
        card = Card(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user.id,
            account_number=user.account_number,
            card_number=card_number,
            card_type=kind,
            card_brand=brand,
            card_name=card_name.strip(),
            expiry_month=now.month,
            expiry_year=now.year + CARD_VALIDITY_YEARS,
            cvv=self.cipher.encrypt(cvv),
        )
        if kind == CardType.CREDIT:
            card.credit_limit = to_money(limit)
            card.available_credit = card.credit_limit
        if pin:
            card.pin_salt = generate_salt()
            card.pin_hash = hash_secret(pin, card.pin_salt)

        self.storage.save(self.table_name, card.id, card.to_dict())
        self.audit_trail.log_event(
            event_type=AuditEventType.CARD_CREATED,
            entity_type="card",
            entity_id=card.id,
            user_id=user.id,
            metadata={"card_type": kind.value, "card_brand": brand.value,
                      "last4": card_number[-4:]}
        )
        return card, cvv

    def update_pin(self, actor: User, card_id: str, new_pin: Optional[str],
                   current_pin: Optional[str] = None) -> Card:
        if not new_pin or not isinstance(new_pin, str) or len(new_pin) < 4:
            raise ValidationError("New PIN is required and must be at least 4 digits")
        validator = Validator()
        validator.pin(new_pin, "new_pin")
        validator.raise_if_invalid()

        card = self._load_for_update(actor, card_id)
        if card.status != CardStatus.ACTIVE:
            raise ValidationError("Card is not active")
        if card.has_pin and not verify_secret(current_pin or "", card.pin_salt, card.pin_hash):
            raise ValidationError("Current PIN is incorrect")

        card.pin_salt = generate_salt()
        card.pin_hash = hash_secret(new_pin, card.pin_salt)
        self._save(card)

        self.audit_trail.log_event(
            event_type=AuditEventType.CARD_PIN_CHANGED,
            entity_type="card",
            entity_id=card.id,
            user_id=actor.id
        )
        return card

    def update_status(self, actor: User, card_id: str, status: Optional[str]) -> Card:
        try:
            new_status = CardStatus(status)
        except ValueError:
            raise ValidationError("Invalid status")

        card = self._load_for_update(actor, card_id)
        old_status = card.status
        card.status = new_status
        self._save(card)

        self.audit_trail.log_event(
            event_type=AuditEventType.CARD_STATUS_CHANGED,
            entity_type="card",
            entity_id=card.id,
            user_id=actor.id,
            metadata={"old_status": old_status.value, "new_status": new_status.value}
        )
        return card
