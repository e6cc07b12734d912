"""
User endpoints (admin management, own profile, transfer recipients, client data)
"""

from typing import Dict, Any

from fastapi import APIRouter, Depends, Body

from .auth import BankingSystem, get_banking_system, get_current_user, require_admin
from .responses import ok
from .schemas import CheckEmailRequest, CheckPhoneRequest, UpdateUserRequest, RoleRequest, StatusRequest
from ..errors import ValidationError
from ..validation import Validator
from ..users import User


router = APIRouter()


@router.get("/banks")
async def get_banks(system: BankingSystem = Depends(get_banking_system)):
    """Public list of supported banks"""
    return ok(system.bank_directory.to_list())


@router.post("/check-email")
async def check_email(
    request: CheckEmailRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    validator = Validator()
    validator.email(request.email)
    validator.raise_if_invalid()
    exists = system.user_manager.email_exists(request.email)
    return ok({
        "exists": exists,
        "message": "Email already registered" if exists else "Email available",
    })


@router.post("/check-phone")
async def check_phone(
    request: CheckPhoneRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    validator = Validator()
    validator.phone(request.phone)
    validator.raise_if_invalid()
    return ok(system.user_manager.check_phone_limit(request.phone))


@router.get("/transfer-recipients")
async def transfer_recipients(
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Active customers the current user can send money to"""
    return ok(system.user_manager.transfer_recipients(user.id))


@router.get("/me/client-data")
async def get_client_data(
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    return ok(system.user_manager.get_client_data(user.id))


@router.put("/me/client-data")
async def update_client_data(
    updates: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Merge a partial ClientData document"""
    return ok(system.user_manager.update_client_data(user.id, updates))


@router.get("/stats")
async def get_user_stats(
    admin: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    return ok(system.user_manager.user_stats())


@router.get("/bank-metrics")
async def get_bank_metrics(
    admin: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    return ok(system.user_manager.bank_metrics())


@router.get("")
async def list_users(
    page: int = 1,
    limit: int = 20,
    admin: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """List all users, newest first (admin only)"""
    users, pagination = system.user_manager.list_users(page=page, limit=limit)
    return ok([u.to_public_dict() for u in users], pagination=pagination)


@router.get("/account/{account_number}")
async def get_user_by_account(
    account_number: str,
    admin: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    user = system.user_manager.require_by_account_number(account_number)
    return ok(user.to_public_dict())


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    actor: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    return ok(system.user_manager.get_visible_user(actor, user_id).to_public_dict())


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    actor: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    user = system.user_manager.update_user(actor, user_id, request.model_dump(exclude_none=True))
    return ok(user.to_public_dict())


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    admin: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """Delete a user and everything they own"""
    system.user_manager.delete_user(admin, user_id)
    return ok({}, message="User deleted successfully")


@router.put("/{user_id}/role")
async def update_user_role(
    user_id: str,
    request: RoleRequest,
    admin: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    if not request.role:
        raise ValidationError("Invalid role")
    user = system.user_manager.update_role(admin, user_id, request.role)
    return ok(
        {"id": user.id, "name": user.name, "email": user.email, "role": user.role},
        message=f"User role updated to {user.role.value}"
    )


@router.put("/{user_id}/status")
async def update_user_status(
    user_id: str,
    request: StatusRequest,
    admin: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    if not request.status:
        raise ValidationError("Invalid status")
    user = system.user_manager.update_status(admin, user_id, request.status)
    return ok(
        {"id": user.id, "name": user.name, "email": user.email, "status": user.status},
        message=f"User status updated to {user.status.value}"
    )
