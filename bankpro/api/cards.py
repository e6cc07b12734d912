"""
Card endpoints
"""

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system, get_current_user
from .responses import ok
from .schemas import CreateCardRequest, UpdatePinRequest, StatusRequest
from ..users import User


router = APIRouter()


@router.get("")
async def get_user_cards(
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    cards = system.card_manager.list_cards(user)
    return ok([system.card_manager.to_public_dict(card) for card in cards])


@router.post("", status_code=201)
async def create_card(
    request: CreateCardRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Issue a new card; the CVV is returned in plain text this once"""
    card, cvv = system.card_manager.create_card(
        user,
        card_type=request.card_type,
        card_brand=request.card_brand,
        card_name=request.card_name,
        pin=request.pin,
        credit_limit=request.credit_limit
    )
    data = system.card_manager.to_public_dict(card, include_cvv=False)
    data["one_time_cvv"] = cvv
    return ok(data, message="Card created successfully")


@router.put("/{card_id}/pin")
async def update_card_pin(
    card_id: str,
    request: UpdatePinRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    system.card_manager.update_pin(user, card_id, request.new_pin, current_pin=request.current_pin)
    return ok(message="PIN updated successfully")


@router.put("/{card_id}/status")
async def update_card_status(
    card_id: str,
    request: StatusRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    card = system.card_manager.update_status(user, card_id, request.status)
    return ok(system.card_manager.to_public_dict(card, include_cvv=False),
              message=f"Card status updated to {card.status.value}")
