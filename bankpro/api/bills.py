"""
Bill endpoints
"""

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system, get_current_user
from .responses import ok
from .schemas import BillRequest
from ..users import User


router = APIRouter()


@router.get("")
async def get_bills(
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    return ok([bill.to_public_dict() for bill in system.bill_manager.list_bills(user)])


@router.post("", status_code=201)
async def create_bill(
    request: BillRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    bill = system.bill_manager.create_bill(user, request.model_dump(exclude_none=True))
    return ok(bill.to_public_dict())


@router.get("/{bill_id}")
async def get_bill(
    bill_id: str,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    return ok(system.bill_manager.get_bill(user, bill_id).to_public_dict())


@router.put("/{bill_id}")
async def update_bill(
    bill_id: str,
    request: BillRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    bill = system.bill_manager.update_bill(user, bill_id, request.model_dump(exclude_none=True))
    return ok(bill.to_public_dict())


@router.delete("/{bill_id}")
async def delete_bill(
    bill_id: str,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    system.bill_manager.delete_bill(user, bill_id)
    return ok({}, message="Bill deleted")


@router.post("/{bill_id}/pay")
async def pay_bill(
    bill_id: str,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Pay a bill from the current user's balance"""
    bill = system.bill_manager.pay_bill(user, bill_id)
    return ok(bill.to_public_dict(), message="Bill paid successfully")
