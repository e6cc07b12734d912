"""
Pydantic schemas for API requests

Most fields are optional here; the managers validate values and report
every problem in one 400 response.
"""

from typing import Dict, Optional, Any
from pydantic import BaseModel


class BankDetailsModel(BaseModel):
    bank_name: Optional[str] = None
    ifsc_code: Optional[str] = None
    branch_name: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        return {k: v for k, v in self.model_dump().items() if v}


# Auth schemas
class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None
    initial_deposit: Any = None
    bank_details: Optional[BankDetailsModel] = None


class LoginRequest(BaseModel):
    identifier: Optional[str] = None
    password: Optional[str] = None


class AccountLoginRequest(LoginRequest):
    account_id: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    password: Optional[str] = None


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class UpdatePasswordRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class AddressModel(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class UpdateDetailsRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None
    address: Optional[AddressModel] = None
    occupation: Optional[str] = None
    income: Optional[float] = None
    currency: Optional[str] = None
    language: Optional[str] = None
    theme: Optional[str] = None
    bank_name: Optional[str] = None
    ifsc_code: Optional[str] = None
    branch_name: Optional[str] = None


# User schemas
class CheckEmailRequest(BaseModel):
    email: Optional[str] = None


class CheckPhoneRequest(BaseModel):
    phone: Optional[str] = None


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    profile: Optional[Dict[str, Any]] = None
    preferences: Optional[Dict[str, Any]] = None
    status: Optional[str] = None


class RoleRequest(BaseModel):
    role: Optional[str] = None


class StatusRequest(BaseModel):
    status: Optional[str] = None


# Transaction schemas
class CreateTransactionRequest(BaseModel):
    type: Optional[str] = None
    amount: Any = None
    description: Optional[str] = None
    category: Optional[str] = None
    recipient_id: Optional[str] = None
    recipient_account: Optional[str] = None
    recipient_name: Optional[str] = None


class UpdateTransactionRequest(BaseModel):
    description: Optional[str] = None
    category: Optional[str] = None


class RecipientBankModel(BaseModel):
    bank_name: Optional[str] = None
    ifsc_code: Optional[str] = None
    branch_name: Optional[str] = None


class TransferRequest(BaseModel):
    recipient_account: Optional[str] = None
    recipient_phone: Optional[str] = None
    recipient_bank: Optional[RecipientBankModel] = None
    recipient_name: Optional[str] = None
    amount: Any = None
    description: Optional[str] = None

    def bank_dict(self) -> Optional[Dict[str, Any]]:
        if self.recipient_bank is None:
            return None
        return self.recipient_bank.model_dump()


# Bank schemas
class AddBankRequest(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    ifsc_prefix: Optional[str] = None
    description: Optional[str] = None


# Card schemas
class CreateCardRequest(BaseModel):
    card_type: Optional[str] = None
    card_brand: Optional[str] = None
    card_name: Optional[str] = None
    pin: Optional[str] = None
    credit_limit: Any = None


class UpdatePinRequest(BaseModel):
    current_pin: Optional[str] = None
    new_pin: Optional[str] = None


# Bill schemas
class BillRequest(BaseModel):
    type: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    bill_number: Optional[str] = None
    account_number: Optional[str] = None
    amount: Any = None
    due_date: Optional[str] = None
    status: Optional[str] = None
    is_recurring: Optional[bool] = None
    frequency: Optional[str] = None


# Recurring payment schemas
class RecurringPaymentRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    amount: Any = None
    frequency: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    next_due_date: Optional[str] = None
    to_account: Optional[str] = None
    beneficiary_name: Optional[str] = None
    status: Optional[str] = None
    is_auto_pay: Optional[bool] = None
