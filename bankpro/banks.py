"""
Bank Directory Module

Admin-managed list of banks that transfers can be sent to, keyed by a
slug id, with IFSC prefix helpers.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
import re

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import ConflictError, NotFoundError, ValidationError
from .validation import Validator


POPULAR_BANKS = [
    {"id": "bankpro", "name": "BankPro", "ifsc_prefix": "BANK",
     "description": "Our primary banking system"},
    {"id": "sbi", "name": "State Bank of India", "ifsc_prefix": "SBIN",
     "description": "Largest public sector bank in India"},
    {"id": "hdfc", "name": "HDFC Bank", "ifsc_prefix": "HDFC",
     "description": "Leading private sector bank"},
    {"id": "icici", "name": "ICICI Bank", "ifsc_prefix": "ICIC",
     "description": "International banking and financial services"},
    {"id": "axis", "name": "Axis Bank", "ifsc_prefix": "UTIB",
     "description": "Modern banking solutions"},
    {"id": "pnb", "name": "Punjab National Bank", "ifsc_prefix": "PUNB",
     "description": "Government-owned bank"},
    {"id": "kotak", "name": "Kotak Mahindra Bank", "ifsc_prefix": "KKBK",
     "description": "Innovative banking services"},
    {"id": "idbi", "name": "IDBI Bank", "ifsc_prefix": "IBKL",
     "description": "Development banking institution"},
    {"id": "federal", "name": "Federal Bank", "ifsc_prefix": "FDRL",
     "description": "Progressive banking solutions"},
    {"id": "indusind", "name": "IndusInd Bank", "ifsc_prefix": "INDB",
     "description": "Technology-driven banking"},
    {"id": "yes", "name": "Yes Bank", "ifsc_prefix": "YESB",
     "description": "Customer-centric banking"},
    {"id": "bandhan", "name": "Bandhan Bank", "ifsc_prefix": "BDBL",
     "description": "Inclusive banking for all"},
]

IFSC_PREFIX_PATTERN = re.compile(r'^[A-Z]{4}$')


def slugify(name: str) -> str:
    return re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')


@dataclass
class Bank(StorageRecord):
    name: str
    ifsc_prefix: str
    description: str


class BankDirectory:
    """Bank list stored in the ``banks`` collection"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "banks"

    def seed_defaults(self) -> int:
        """Insert any popular bank not already present; returns how many were added"""
        added = 0
        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            for entry in POPULAR_BANKS:
                if self.storage.exists(self.table_name, entry["id"]):
                    continue
                bank = Bank(created_at=now, updated_at=now, **entry)
                self.storage.save(self.table_name, bank.id, bank.to_dict())
                added += 1
        return added

    def list_banks(self) -> List[Bank]:
        banks = [Bank.from_dict(data) for data in self.storage.load_all(self.table_name)]
        banks.sort(key=lambda b: b.created_at)
        return banks

    def get_bank(self, bank_id: str) -> Optional[Bank]:
        data = self.storage.load(self.table_name, bank_id)
        if data:
            return Bank.from_dict(data)
        return None

    def add_bank(self, name: Optional[str], ifsc_prefix: Optional[str],
                 description: Optional[str], bank_id: Optional[str] = None,
                 actor_id: Optional[str] = None) -> Bank:
        if not name or not ifsc_prefix or not description:
            raise ValidationError("All fields are required")

        validator = Validator()
        ifsc_prefix = ifsc_prefix.strip().upper()
        if not IFSC_PREFIX_PATTERN.match(ifsc_prefix):
            validator.add("ifsc_prefix", "IFSC prefix must be 4 letters")
        validator.raise_if_invalid()

        bank_id = bank_id or slugify(name)
        if self.storage.exists(self.table_name, bank_id):
            raise ConflictError(f"Bank '{bank_id}' already exists")

        now = datetime.now(timezone.utc)
        bank = Bank(
            id=bank_id,
            created_at=now,
            updated_at=now,
            name=name.strip(),
            ifsc_prefix=ifsc_prefix,
            description=description.strip()
        )
        self.storage.save(self.table_name, bank.id, bank.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.BANK_ADDED,
            entity_type="bank",
            entity_id=bank.id,
            user_id=actor_id,
            metadata={"name": bank.name, "ifsc_prefix": bank.ifsc_prefix}
        )
        return bank

    def delete_bank(self, bank_id: str, actor_id: Optional[str] = None) -> None:
        if not self.storage.delete(self.table_name, bank_id):
            raise NotFoundError("Bank not found")
        self.audit_trail.log_event(
            event_type=AuditEventType.BANK_DELETED,
            entity_type="bank",
            entity_id=bank_id,
            user_id=actor_id
        )

    def get_bank_by_ifsc(self, code: str) -> Optional[Bank]:
        prefix = (code or "")[:4].upper()
        for bank in self.list_banks():
            if bank.ifsc_prefix == prefix:
                return bank
        return None

    def validate_ifsc(self, code: str, bank_id: str) -> bool:
        """True when the code is 11 characters and starts with the bank's prefix"""
        if not code or len(code) != 11:
            return False
        bank = self.get_bank(bank_id)
        if not bank:
            return False
        return code.startswith(bank.ifsc_prefix)

    def to_list(self) -> List[Dict[str, Any]]:
        return [bank.to_dict() for bank in self.list_banks()]
