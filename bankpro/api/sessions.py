"""
Authentication endpoints (register, login, tokens, password reset)
"""

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system, get_current_user
from .responses import ok
from .schemas import (
    RegisterRequest, LoginRequest, AccountLoginRequest, ForgotPasswordRequest,
    ResetPasswordRequest, RefreshRequest, UpdatePasswordRequest, UpdateDetailsRequest
)
from ..logging_config import get_logger, log_action
from ..users import User


router = APIRouter()
logger = get_logger("bankpro.api.auth")


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Register a new user"""
    session = system.user_manager.register(
        name=request.name,
        email=request.email,
        phone=request.phone,
        password=request.password,
        initial_deposit=request.initial_deposit,
        bank_details=request.bank_details.to_dict() if request.bank_details else None
    )
    return ok(session.to_dict())


@router.post("/login")
async def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Log in with email or phone number"""
    session = system.user_manager.login(request.identifier, request.password)
    return ok(session.to_dict())


@router.post("/login-account")
async def login_with_account(
    request: AccountLoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Log in to a chosen account when a phone number has several"""
    session = system.user_manager.login_with_account(
        request.identifier, request.password, request.account_id
    )
    return ok(session.to_dict())


@router.post("/forgotpassword")
async def forgot_password(
    request: ForgotPasswordRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Generate a password reset token"""
    reset_token = system.user_manager.forgot_password(request.email)
    return ok(reset_token, message="Password reset token generated")


@router.get("/resetpassword/{reset_token}")
async def verify_reset_token(
    reset_token: str,
    system: BankingSystem = Depends(get_banking_system)
):
    user = system.user_manager.verify_reset_token(reset_token)
    return ok({"email": user.email}, message="Reset token is valid")


@router.put("/resetpassword/{reset_token}")
async def reset_password(
    reset_token: str,
    request: ResetPasswordRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    token = system.user_manager.reset_password(reset_token, request.password)
    return ok({"token": token}, message="Password reset successful")


@router.post("/refresh")
async def refresh_token(
    request: RefreshRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Exchange a refresh token for a new access token"""
    token = system.user_manager.refresh(request.refresh_token)
    return ok({"token": token})


@router.post("/logout")
async def logout(
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    system.user_manager.logout(user)
    log_action(logger, "info", "User logged out", user_id=user.id, action="logout", resource="user")
    return ok({}, message="Logged out successfully")


@router.get("/me")
async def get_me(user: User = Depends(get_current_user)):
    """Get the current logged in user"""
    return ok(user.to_public_dict())


@router.put("/updatedetails")
async def update_details(
    request: UpdateDetailsRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    updated = system.user_manager.update_details(user.id, request.model_dump(exclude_none=True))
    return ok(updated.to_public_dict())


@router.put("/updatepassword")
async def update_password(
    request: UpdatePasswordRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    token = system.user_manager.update_password(
        user.id, request.current_password, request.new_password
    )
    return ok({"token": token}, message="Password updated successfully")
