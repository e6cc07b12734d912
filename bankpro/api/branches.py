"""
Branch and ATM locator endpoint
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system, get_current_user
from .responses import ok
from ..users import User


router = APIRouter()


@router.get("")
async def find_branches(
    lat: Optional[str] = None,
    lng: Optional[str] = None,
    radius: str = "25",
    type: str = "all",
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Branches and ATMs of the current user's bank near a point"""
    result = system.branch_locator.locate(
        lat, lng, radius=radius, location_type=type,
        bank_name=user.bank_details.bank_name
    )
    return ok(result)
