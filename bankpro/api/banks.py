"""
Bank directory endpoints
"""

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system, require_admin
from .responses import ok
from .schemas import AddBankRequest
from ..users import User


router = APIRouter()


@router.get("")
async def get_banks(system: BankingSystem = Depends(get_banking_system)):
    return ok(system.bank_directory.to_list())


@router.post("", status_code=201)
async def add_bank(
    request: AddBankRequest,
    admin: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """Add a bank to the directory (admin only)"""
    bank = system.bank_directory.add_bank(
        name=request.name,
        ifsc_prefix=request.ifsc_prefix,
        description=request.description,
        bank_id=request.id,
        actor_id=admin.id
    )
    return ok(bank.to_dict())


@router.delete("/{bank_id}")
async def delete_bank(
    bank_id: str,
    admin: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    system.bank_directory.delete_bank(bank_id, actor_id=admin.id)
    return ok({}, message="Bank deleted successfully")
