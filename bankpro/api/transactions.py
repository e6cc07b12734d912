"""
Transaction endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system, get_current_user
from .responses import ok
from .schemas import CreateTransactionRequest, UpdateTransactionRequest, TransferRequest
from ..transactions import LISTED_CATEGORIES
from ..users import User


router = APIRouter()


@router.get("/categories")
async def get_categories(user: User = Depends(get_current_user)):
    return ok(LISTED_CATEGORIES)


@router.get("/stats")
async def get_transaction_stats(
    period: str = "month",
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Credit/debit totals and spending by category for the last week, month or year"""
    return ok(system.transaction_processor.stats(user, period))


@router.post("/validate-transfer")
async def validate_transfer(
    request: TransferRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Preview fee, total and recipient for a transfer without moving money"""
    preview, message = system.transaction_processor.preview_transfer(
        sender=user,
        amount=request.amount,
        recipient_account=request.recipient_account,
        recipient_phone=request.recipient_phone,
        recipient_bank=request.bank_dict(),
        description=request.description
    )
    return ok(preview, message=message)


@router.post("/transfer", status_code=201)
async def transfer_money(
    request: TransferRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Send money to another BankPro account or an account at another bank"""
    result = system.transaction_processor.transfer(
        sender=user,
        amount=request.amount,
        recipient_account=request.recipient_account,
        recipient_phone=request.recipient_phone,
        recipient_bank=request.bank_dict(),
        recipient_name=request.recipient_name,
        description=request.description
    )
    message = result.pop("message")
    return ok(result, message=message)


@router.get("")
async def get_transactions(
    page: int = 1,
    limit: int = 20,
    type: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    transactions, pagination = system.transaction_processor.list_transactions(
        user,
        page=page,
        limit=limit,
        transaction_type=type,
        category=category,
        start_date=start_date,
        end_date=end_date
    )
    return ok([t.to_public_dict() for t in transactions], pagination=pagination)


@router.post("", status_code=201)
async def create_transaction(
    request: CreateTransactionRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    transaction = system.transaction_processor.create_transaction(
        actor=user,
        transaction_type=request.type,
        amount=request.amount,
        description=request.description,
        category=request.category,
        recipient_id=request.recipient_id,
        recipient_account=request.recipient_account,
        recipient_name=request.recipient_name
    )
    return ok(transaction.to_public_dict())


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    transaction = system.transaction_processor.get_transaction(user, transaction_id)
    return ok(transaction.to_public_dict())


@router.put("/{transaction_id}")
async def update_transaction(
    transaction_id: str,
    request: UpdateTransactionRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    transaction = system.transaction_processor.update_transaction(
        user, transaction_id, description=request.description, category=request.category
    )
    return ok(transaction.to_public_dict())


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Delete a transaction and reverse its effect on the owner's balance"""
    system.transaction_processor.delete_transaction(user, transaction_id)
    return ok({}, message="Transaction deleted successfully")
