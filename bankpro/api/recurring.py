"""
Recurring payment endpoints
"""

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system, get_current_user
from .responses import ok
from .schemas import RecurringPaymentRequest
from ..users import User


router = APIRouter()


@router.get("")
async def get_recurring_payments(
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    payments = system.recurring_manager.list_payments(user)
    return ok([payment.to_dict() for payment in payments])


@router.post("", status_code=201)
async def create_recurring_payment(
    request: RecurringPaymentRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    payment = system.recurring_manager.create_payment(user, request.model_dump(exclude_none=True))
    return ok(payment.to_dict())


@router.put("/{payment_id}")
async def update_recurring_payment(
    payment_id: str,
    request: RecurringPaymentRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    payment = system.recurring_manager.update_payment(
        user, payment_id, request.model_dump(exclude_none=True)
    )
    return ok(payment.to_dict())


@router.delete("/{payment_id}")
async def delete_recurring_payment(
    payment_id: str,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    system.recurring_manager.delete_payment(user, payment_id)
    return ok({}, message="Recurring payment deleted")


@router.post("/{payment_id}/record-payment")
async def record_recurring_payment(
    payment_id: str,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Record the current instalment as paid and advance the due date"""
    payment = system.recurring_manager.record_payment(user, payment_id)
    return ok(payment.to_dict())
