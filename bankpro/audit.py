"""
Audit Trail Module

Hash-chained append-only audit log with SHA-256 for tamper detection.
Security-relevant changes (logins, password and role changes, transfers,
deletions, bank and card changes) are logged here.
"""

import hashlib
import json
import uuid
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord, to_json_value, parse_datetime


class AuditEventType(Enum):
    """Types of audit events"""
    # User events
    USER_REGISTERED = "user_registered"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"
    USER_ROLE_CHANGED = "user_role_changed"
    USER_STATUS_CHANGED = "user_status_changed"
    USER_LOCKED = "user_locked"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET = "password_reset"

    # Transaction events
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSFER_COMPLETED = "transfer_completed"
    BILL_PAID = "bill_paid"

    # Directory and card events
    BANK_ADDED = "bank_added"
    BANK_DELETED = "bank_deleted"
    CARD_CREATED = "card_created"
    CARD_PIN_CHANGED = "card_pin_changed"
    CARD_STATUS_CHANGED = "card_status_changed"

    # System events
    DATABASE_CLEARED = "database_cleared"


@dataclass
class AuditEvent(StorageRecord):
    """
    Immutable audit event with hash chaining for tamper detection
    """
    event_type: AuditEventType
    entity_type: str  # user, transaction, bank, card, ...
    entity_id: str
    sequence: int     # position in the chain
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any]
    user_id: Optional[str] = None  # User who initiated the action

    def __post_init__(self):
        if self.metadata:
            self.metadata = to_json_value(self.metadata)

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this event
        Hash includes all fields except current_hash to prevent circular reference
        """
        hash_data = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'sequence': self.sequence,
            'previous_hash': self.previous_hash,
            'user_id': self.user_id,
            'metadata': self.metadata
        }

        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        data = dict(data)
        data['created_at'] = parse_datetime(data['created_at'])
        data['updated_at'] = parse_datetime(data['updated_at'])
        data['event_type'] = AuditEventType(data['event_type'])
        return cls(**data)


class AuditTrail:
    """
    Hash-chained audit trail for tamper detection
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name
        self._head: Optional[tuple] = None  # (sequence, hash, event id)

    def _load_events(self) -> List[AuditEvent]:
        events = [AuditEvent.from_dict(data) for data in self.storage.load_all(self.table_name)]
        events.sort(key=lambda e: e.sequence)
        return events

    def _chain_head(self) -> tuple:
        """(sequence, hash) of the most recent event"""
        # The cached head is trusted only while its event is still stored and
        # nothing else was appended; a rollback or a cleared table forces a rescan.
        if self._head is not None:
            sequence, current_hash, event_id = self._head
            if (self.storage.count(self.table_name) == sequence
                    and self.storage.load(self.table_name, event_id) is not None):
                return sequence, current_hash

        latest = None
        for data in self.storage.load_all(self.table_name):
            if latest is None or data['sequence'] > latest['sequence']:
                latest = data
        if latest is None:
            self._head = None
            return 0, ""
        self._head = (latest["sequence"], latest["current_hash"], latest["id"])
        return latest["sequence"], latest["current_hash"]

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> AuditEvent:
        """
        Log an audit event with hash chaining

        Args:
            event_type: Type of audit event
            entity_type: Type of entity being audited
            entity_id: ID of the entity
            metadata: Additional event-specific data
            user_id: ID of user who initiated the action

        Returns:
            Created AuditEvent
        """
        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            last_sequence, last_hash = self._chain_head()

            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                sequence=last_sequence + 1,
                previous_hash=last_hash,
                current_hash="",
                user_id=user_id,
                metadata=metadata or {}
            )
            event.current_hash = event.calculate_hash()

            self.storage.save(self.table_name, event.id, event.to_dict())
            self._head = (event.sequence, event.current_hash, event.id)
            return event

    def get_events_for_entity(self, entity_type: str, entity_id: str,
                              limit: Optional[int] = None) -> List[AuditEvent]:
        """Get audit events for one entity, oldest first"""
        events = [
            AuditEvent.from_dict(data)
            for data in self.storage.find(self.table_name, {
                'entity_type': entity_type,
                'entity_id': entity_id
            })
        ]
        events.sort(key=lambda e: e.sequence)
        if limit:
            events = events[-limit:]
        return events

    def get_recent_events(self, limit: int = 50,
                          event_type: Optional[AuditEventType] = None) -> List[AuditEvent]:
        """Most recent events, newest first"""
        events = self._load_events()
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return list(reversed(events[-limit:])) if limit else list(reversed(events))

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire audit chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': [],
        }

        events = self._load_events()
        result['total_events'] = len(events)

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        return result

    def count_events(self) -> int:
        """Get total number of audit events"""
        return self.storage.count(self.table_name)
