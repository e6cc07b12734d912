"""
Admin endpoints (audit trail)
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system, require_admin
from .responses import ok
from ..audit import AuditEventType
from ..errors import ValidationError
from ..users import User


router = APIRouter()


@router.get("/audit")
async def get_audit_events(
    limit: int = 50,
    event_type: Optional[str] = None,
    admin: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """Recent audit events, newest first, with the chain integrity check"""
    kind = None
    if event_type:
        try:
            kind = AuditEventType(event_type)
        except ValueError:
            raise ValidationError(f"Unknown event type: {event_type}")

    events = system.audit_trail.get_recent_events(limit=min(max(limit, 1), 500), event_type=kind)
    return ok(
        [event.to_dict() for event in events],
        integrity=system.audit_trail.verify_integrity(),
        total_events=system.audit_trail.count_events()
    )
