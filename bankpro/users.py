"""
User Management Module

Registration, login (email or phone, with account selection and lockout),
profile updates, password reset, admin user management, and the per-user
ClientData document.
"""

from decimal import Decimal
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
import secrets
import string
import time
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime
from .audit import AuditTrail, AuditEventType
from .config import BankProConfig
from .errors import (
    ValidationError, AuthenticationError, PermissionDenied, NotFoundError,
    AccountLockedError, MultipleAccountsError
)
from .logging_config import get_logger, log_action
from .money import to_money, ZERO
from .notifications import NotificationManager, NotificationType
from .security import (
    TokenService, REFRESH_TOKEN, generate_salt, hash_secret, verify_secret,
    generate_reset_token, digest_reset_token
)
from .transactions import TransactionStore, TransactionType
from .validation import Validator, is_email


logger = get_logger("bankpro.users")

# Collections holding per-user documents, removed when a user is deleted
OWNED_TABLES = ["transactions", "cards", "bills", "recurring_payments", "notifications"]

CLIENT_DATA_SECTIONS = [
    'securityQuestions', 'loginHistory', 'recurringPayments', 'budgets',
    'investments', 'goals', 'exchangeCache'
]

MAX_STORED_TOKENS = 20

BLOCKED_MESSAGE = "Your account has been blocked by admin."
DELETED_MESSAGE = "Your account has been deleted by admin."
LOCKED_MESSAGE = "Account is temporarily locked due to too many failed attempts"


class UserRole(Enum):
    USER = "user"
    ADMIN = "admin"


class UserStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


@dataclass
class BankDetails:
    bank_name: str
    ifsc_code: str = ""
    branch_name: str = "Main Branch"


@dataclass
class SecurityState:
    login_attempts: int = 0
    lock_until: Optional[datetime] = None
    last_login: Optional[datetime] = None
    password_reset_token: Optional[str] = None  # SHA-256 digest only
    password_reset_expires: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SecurityState':
        return cls(
            login_attempts=data.get('login_attempts', 0),
            lock_until=parse_datetime(data.get('lock_until')),
            last_login=parse_datetime(data.get('last_login')),
            password_reset_token=data.get('password_reset_token'),
            password_reset_expires=parse_datetime(data.get('password_reset_expires')),
        )


def default_preferences() -> Dict[str, Any]:
    return {
        "currency": "INR",
        "language": "en",
        "theme": "light",
        "notifications": {"email": True, "sms": True, "push": True},
    }


def generate_account_number() -> str:
    """'ACC-' + base36 millisecond timestamp + 5 random uppercase characters"""
    value = int(time.time() * 1000)
    digits = string.digits + string.ascii_lowercase
    encoded = ""
    while value:
        value, remainder = divmod(value, 36)
        encoded = digits[remainder] + encoded
    suffix = ''.join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(5))
    return f"ACC-{encoded}{suffix}"


@dataclass
class User(StorageRecord):
    """Bank customer with a single INR account"""
    name: str
    email: str
    phone: str
    account_number: str
    password_hash: str
    password_salt: str
    bank_details: BankDetails
    role: UserRole = UserRole.USER
    status: UserStatus = UserStatus.ACTIVE
    balance: Decimal = ZERO
    profile: Dict[str, Any] = field(default_factory=dict)
    preferences: Dict[str, Any] = field(default_factory=default_preferences)
    security: SecurityState = field(default_factory=SecurityState)
    client_data: Dict[str, Any] = field(default_factory=dict)
    tokens: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_blocked(self) -> bool:
        return self.status in (UserStatus.INACTIVE, UserStatus.SUSPENDED)

    @property
    def is_locked(self) -> bool:
        lock_until = self.security.lock_until
        return lock_until is not None and lock_until > datetime.now(timezone.utc)

    def to_public_dict(self) -> Dict[str, Any]:
        """Representation safe to return to clients"""
        data = self.to_dict()
        for secret_field in ('password_hash', 'password_salt', 'tokens', 'client_data'):
            data.pop(secret_field, None)
        data['security'] = {
            'last_login': data['security'].get('last_login'),
            'is_locked': self.is_locked,
        }
        return data

    def to_account_choice(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "account_number": self.account_number,
            "bank_details": self.to_dict()['bank_details'],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        data = dict(data)
        data['role'] = UserRole(data['role'])
        data['status'] = UserStatus(data['status'])
        data['balance'] = Decimal(data['balance'])
        data['bank_details'] = BankDetails(**data['bank_details'])
        data['security'] = SecurityState.from_dict(data.get('security') or {})
        return super().from_dict(data)


@dataclass
class AuthSession:
    """Result of a successful registration or login"""
    user: User
    token: str
    refresh_token: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": self.user.to_public_dict(),
            "token": self.token,
            "refresh_token": self.refresh_token,
        }


class UserManager:
    """
    Manages the user lifecycle: registration, authentication, profile and
    administrative changes
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 notifications: NotificationManager, config: BankProConfig,
                 tokens: TokenService):
        self.storage = storage
        self.audit_trail = audit_trail
        self.notifications = notifications
        self.config = config
        self.tokens = tokens
        self.transaction_store = TransactionStore(storage)
        self.table_name = "users"

    # ------------------------------------------------------------------
    # Lookups

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.storage.load(self.table_name, user_id)
        if data:
            return User.from_dict(data)
        return None

    def require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def get_by_email(self, email: str) -> Optional[User]:
        users = self.storage.find(self.table_name, {"email": (email or "").strip().lower()})
        if users:
            return User.from_dict(users[0])
        return None

    def find_by_phone(self, phone: str) -> List[User]:
        return [User.from_dict(data) for data in self.storage.find(self.table_name, {"phone": phone})]

    def get_by_account_number(self, account_number: str) -> Optional[User]:
        users = self.storage.find(self.table_name, {"account_number": account_number})
        if users:
            return User.from_dict(users[0])
        return None

    def require_by_account_number(self, account_number: str) -> User:
        user = self.get_by_account_number(account_number)
        if not user:
            raise NotFoundError("User not found")
        return user

    def all_users(self) -> List[User]:
        return [User.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def save_user(self, user: User) -> None:
        user.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, user.id, user.to_dict())

    # ------------------------------------------------------------------
    # Registration

    def check_phone_limit(self, phone: str) -> Dict[str, Any]:
        count = len(self.storage.find(self.table_name, {"phone": phone}))
        maximum = self.config.max_accounts_per_phone
        can_register = count < maximum
        return {
            "exists": not can_register,
            "count": count,
            "max_allowed": maximum,
            "can_register": can_register,
            "message": (f"Phone number available ({count}/{maximum} accounts used)"
                        if can_register else
                        f"Maximum {maximum} accounts allowed per phone number"),
        }

    def email_exists(self, email: str) -> bool:
        return self.get_by_email(email) is not None

    def register(
        self,
        name: str,
        email: str,
        phone: str,
        password: str,
        initial_deposit: Any = None,
        bank_details: Optional[Dict[str, str]] = None,
        role: UserRole = UserRole.USER
    ) -> AuthSession:
        """
        Register a new user and open their account.

        Args:
            name: 2-50 letters, spaces, hyphens or apostrophes
            email: Unique email address (stored lowercase)
            phone: 10 digit phone number, shared by at most 3 users
            password: At least 8 characters with upper, lower, digit and special
            initial_deposit: Opening balance, recorded as a credit when positive
            bank_details: Optional bank_name/ifsc_code/branch_name

        Returns:
            AuthSession with the new user and an access/refresh token pair
        """
        validator = Validator()
        validator.name(name)
        validator.email(email)
        validator.phone(phone)
        validator.password(password)
        deposit = ZERO
        if initial_deposit not in (None, ""):
            deposit = validator.amount(initial_deposit, "initial_deposit", minimum=ZERO,
                                       message="Initial deposit must be a positive number")
        validator.raise_if_invalid()

        email = email.strip().lower()
        with self.storage.atomic():
            if self.email_exists(email):
                raise ValidationError("Email already registered")

            phone_check = self.check_phone_limit(phone)
            if not phone_check["can_register"]:
                raise ValidationError(
                    f"Maximum {phone_check['max_allowed']} accounts allowed per phone number. "
                    f"Current count: {phone_check['count']}"
                )

            account_number = generate_account_number()
            while self.get_by_account_number(account_number):
                account_number = generate_account_number()

            details = bank_details or {}
            now = datetime.now(timezone.utc)
            salt = generate_salt()
            user = User(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                name=name.strip(),
                email=email,
                phone=phone,
                account_number=account_number,
                password_hash=hash_secret(password, salt),
                password_salt=salt,
                bank_details=BankDetails(
                    bank_name=details.get('bank_name') or self.config.default_bank_name,
                    ifsc_code=details.get('ifsc_code') or (
                        "" if bank_details else self.config.default_ifsc_code),
                    branch_name=details.get('branch_name') or self.config.default_branch_name,
                ),
                role=role,
                balance=deposit,
            )
            self.save_user(user)

            if deposit > ZERO:
                self.transaction_store.new(
                    user_id=user.id,
                    transaction_type=TransactionType.CREDIT,
                    amount=deposit,
                    balance=deposit,
                    description="Initial account deposit",
                    category="deposit",
                )

            self.audit_trail.log_event(
                event_type=AuditEventType.USER_REGISTERED,
                entity_type="user",
                entity_id=user.id,
                metadata={"email": email, "account_number": account_number,
                          "initial_deposit": deposit, "role": role.value}
            )

        log_action(logger, "info", "User registered", user_id=user.id,
                   action="register", resource="user")
        return self._session(user)

    # ------------------------------------------------------------------
    # Authentication

    def _session(self, user: User) -> AuthSession:
        return AuthSession(
            user=user,
            token=self.tokens.issue(user.id),
            refresh_token=self.tokens.issue(user.id, REFRESH_TOKEN),
        )

    def _check_can_login(self, user: User, password: str) -> None:
        """Blocked, locked and password checks; failed passwords count toward a lock"""
        if user.is_blocked:
            raise PermissionDenied(BLOCKED_MESSAGE)
        if user.is_locked:
            raise AccountLockedError(LOCKED_MESSAGE)
        if not verify_secret(password or "", user.password_salt, user.password_hash):
            self._record_failed_login(user)
            raise AuthenticationError("Invalid credentials")

    def _record_failed_login(self, user: User) -> None:
        user.security.login_attempts += 1
        locked = user.security.login_attempts >= self.config.max_login_attempts
        if locked:
            user.security.lock_until = datetime.now(timezone.utc) + timedelta(
                minutes=self.config.account_lock_minutes)
            user.security.login_attempts = 0
        self.save_user(user)

        self.audit_trail.log_event(
            event_type=AuditEventType.USER_LOCKED if locked else AuditEventType.LOGIN_FAILED,
            entity_type="user",
            entity_id=user.id,
            metadata={"attempts": user.security.login_attempts}
        )
        if locked:
            self.notifications.notify(
                user.id, NotificationType.SECURITY,
                f"Your account was locked for {self.config.account_lock_minutes} minutes "
                f"after {self.config.max_login_attempts} failed login attempts"
            )
            log_action(logger, "warning", "Account locked after failed logins",
                       user_id=user.id, action="lock", resource="user")
        else:
            log_action(logger, "info", "Login failed", user_id=user.id,
                       action="login_failed", resource="user")

    def _complete_login(self, user: User) -> AuthSession:
        user.security.login_attempts = 0
        user.security.lock_until = None
        user.security.last_login = datetime.now(timezone.utc)
        self.save_user(user)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOGIN_SUCCESS,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id
        )
        log_action(logger, "info", "Login succeeded", user_id=user.id,
                   action="login", resource="user")
        return self._session(user)

    def login(self, identifier: str, password: str) -> AuthSession:
        """
        Log in by email or phone number.

        Raises MultipleAccountsError (300) when a phone number matches
        several users; the caller then logs in with login_with_account.
        """
        validator = Validator()
        validator.required(identifier, "identifier", "Email or phone is required")
        validator.required(password, "password", "Password is required")
        validator.raise_if_invalid()

        identifier = identifier.strip()
        if is_email(identifier):
            user = self.get_by_email(identifier)
            if not user:
                raise AuthenticationError("Invalid credentials")
        else:
            users = self.find_by_phone(identifier)
            if not users:
                raise AuthenticationError("Invalid credentials")
            if len(users) > 1:
                raise MultipleAccountsError(
                    "Multiple accounts found for this phone number. "
                    "Please specify which account to login to.",
                    accounts=[u.to_account_choice() for u in users]
                )
            user = users[0]

        self._check_can_login(user, password)
        return self._complete_login(user)

    def login_with_account(self, identifier: str, password: str,
                           account_id: Optional[str]) -> AuthSession:
        """Log in to one chosen account after a multiple-accounts response"""
        if not account_id:
            raise ValidationError("Account ID is required")

        user = self.get_user(account_id)
        if not user:
            raise PermissionDenied(DELETED_MESSAGE)

        identifier = (identifier or "").strip()
        matches = (user.email == identifier.lower()) if is_email(identifier) else (user.phone == identifier)
        if not matches:
            raise AuthenticationError("Invalid credentials")

        self._check_can_login(user, password)
        return self._complete_login(user)

    def logout(self, user: User) -> None:
        self.audit_trail.log_event(
            event_type=AuditEventType.LOGOUT,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id
        )

    def authenticate_token(self, token: str) -> User:
        """Resolve a bearer access token to an active user"""
        payload = self.tokens.decode(token)
        user = self.get_user(payload["sub"])
        if not user:
            raise AuthenticationError("User not found")
        if user.is_blocked:
            raise PermissionDenied(BLOCKED_MESSAGE)
        return user

    def refresh(self, refresh_token: Optional[str]) -> str:
        if not refresh_token:
            raise AuthenticationError("Refresh token is required")
        try:
            payload = self.tokens.decode(refresh_token, REFRESH_TOKEN)
        except AuthenticationError:
            raise AuthenticationError("Invalid refresh token")
        user = self.get_user(payload["sub"])
        if not user:
            raise AuthenticationError("Invalid refresh token")
        return self.tokens.issue(user.id)

    # ------------------------------------------------------------------
    # Passwords

    def update_password(self, user_id: str, current_password: str, new_password: str) -> str:
        """Change password after checking the current one; returns a fresh access token"""
        validator = Validator()
        validator.required(current_password, "current_password", "Current password is required")
        validator.password(new_password, "new_password", label="New password")
        validator.raise_if_invalid()

        user = self.require_user(user_id)
        if not verify_secret(current_password, user.password_salt, user.password_hash):
            raise AuthenticationError("Current password is incorrect")

        self._set_password(user, new_password)
        self.audit_trail.log_event(
            event_type=AuditEventType.PASSWORD_CHANGED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id
        )
        self.notifications.notify(user.id, NotificationType.SECURITY, "Your password was changed")
        return self.tokens.issue(user.id)

    def _set_password(self, user: User, password: str) -> None:
        user.password_salt = generate_salt()
        user.password_hash = hash_secret(password, user.password_salt)
        self.save_user(user)

    def forgot_password(self, email: str) -> str:
        """
        Create a reset token for the user with this email.

        Only the token's SHA-256 digest is stored. The raw token is returned
        to the caller since no mail delivery is configured.
        """
        validator = Validator()
        validator.email(email)
        validator.raise_if_invalid()

        user = self.get_by_email(email)
        if not user:
            raise NotFoundError("User not found")

        raw_token, digest = generate_reset_token()
        user.security.password_reset_token = digest
        user.security.password_reset_expires = datetime.now(timezone.utc) + timedelta(
            minutes=self.config.password_reset_expiry_minutes)
        self.save_user(user)

        self.audit_trail.log_event(
            event_type=AuditEventType.PASSWORD_RESET_REQUESTED,
            entity_type="user",
            entity_id=user.id
        )
        return raw_token

    def _user_for_reset_token(self, raw_token: str) -> User:
        digest = digest_reset_token(raw_token or "")
        for user in self.all_users():
            if user.security.password_reset_token == digest:
                expires = user.security.password_reset_expires
                if not expires or expires < datetime.now(timezone.utc):
                    raise ValidationError("Password reset token has expired.")
                return user
        raise ValidationError("Invalid password reset token.")

    def verify_reset_token(self, raw_token: str) -> User:
        return self._user_for_reset_token(raw_token)

    def reset_password(self, raw_token: str, password: str) -> str:
        validator = Validator()
        validator.password(password)
        validator.raise_if_invalid()

        user = self._user_for_reset_token(raw_token)
        user.security.password_reset_token = None
        user.security.password_reset_expires = None
        user.security.login_attempts = 0
        user.security.lock_until = None
        self._set_password(user, password)

        self.audit_trail.log_event(
            event_type=AuditEventType.PASSWORD_RESET,
            entity_type="user",
            entity_id=user.id
        )
        self.notifications.notify(user.id, NotificationType.SECURITY, "Your password was reset")
        return self.tokens.issue(user.id)

    # ------------------------------------------------------------------
    # Profile

    def _apply_identity(self, user: User, name: Optional[str], email: Optional[str],
                        phone: Optional[str]) -> None:
        validator = Validator()
        if name is not None:
            validator.name(name)
        if email is not None:
            validator.email(email)
        if phone is not None:
            validator.phone(phone)
        validator.raise_if_invalid()

        if email is not None:
            email = email.strip().lower()
            existing = self.get_by_email(email)
            if existing and existing.id != user.id:
                raise ValidationError("Email already registered")
            user.email = email
        if phone is not None and phone != user.phone:
            if not self.check_phone_limit(phone)["can_register"]:
                raise ValidationError(
                    f"Maximum {self.config.max_accounts_per_phone} accounts allowed per phone number")
            user.phone = phone
        if name is not None:
            user.name = name.strip()

    def update_details(self, user_id: str, updates: Dict[str, Any]) -> User:
        """
        Update the current user's own details. Accepts name, email, phone,
        date_of_birth, address, occupation, income, currency, language,
        theme, bank_name, ifsc_code and branch_name; missing keys are left as is.
        """
        user = self.require_user(user_id)
        self._apply_identity(user, updates.get('name'), updates.get('email'), updates.get('phone'))

        for key in ('date_of_birth', 'address', 'occupation', 'income'):
            if updates.get(key) is not None:
                user.profile[key] = updates[key]

        if updates.get('theme') is not None and updates['theme'] not in ('light', 'dark'):
            raise ValidationError("Theme must be light or dark")
        for key in ('currency', 'language', 'theme'):
            if updates.get(key) is not None:
                user.preferences[key] = updates[key]

        if updates.get('bank_name') is not None:
            user.bank_details.bank_name = updates['bank_name']
        if updates.get('ifsc_code') is not None:
            user.bank_details.ifsc_code = updates['ifsc_code']
        if updates.get('branch_name') is not None:
            user.bank_details.branch_name = updates['branch_name']

        self.save_user(user)
        self.audit_trail.log_event(
            event_type=AuditEventType.USER_UPDATED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            metadata={"fields": sorted(k for k, v in updates.items() if v is not None)}
        )
        return user

    def update_user(self, actor: User, user_id: str, updates: Dict[str, Any]) -> User:
        """Own-or-admin update of name, email, phone, profile, preferences (status: admin only)"""
        user = self.require_user(user_id)
        if user.id != actor.id and not actor.is_admin:
            raise PermissionDenied("Not authorized to update this user")
        if actor.is_admin and user.id == actor.id and updates.get('status') is not None:
            raise ValidationError("Cannot change your own status")

        self._apply_identity(user, updates.get('name'), updates.get('email'), updates.get('phone'))
        if isinstance(updates.get('profile'), dict):
            user.profile.update(updates['profile'])
        if isinstance(updates.get('preferences'), dict):
            user.preferences.update(updates['preferences'])
        if actor.is_admin and updates.get('status') is not None:
            user.status = self._parse_status(updates['status'])

        self.save_user(user)
        self.audit_trail.log_event(
            event_type=AuditEventType.USER_UPDATED,
            entity_type="user",
            entity_id=user.id,
            user_id=actor.id,
            metadata={"fields": sorted(k for k, v in updates.items() if v is not None)}
        )
        return user

    def get_visible_user(self, actor: User, user_id: str) -> User:
        user = self.require_user(user_id)
        if user.id != actor.id and not actor.is_admin:
            raise PermissionDenied("Not authorized to view this user")
        return user

    # ------------------------------------------------------------------
    # Administration

    def list_users(self, page: int = 1, limit: int = 20) -> Tuple[List[User], Dict[str, int]]:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        users = sorted(self.all_users(), key=lambda u: u.created_at, reverse=True)
        total = len(users)
        offset = (page - 1) * limit
        return users[offset:offset + limit], {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        }

    def user_stats(self) -> Dict[str, Any]:
        users = self.all_users()
        since = datetime.now(timezone.utc) - timedelta(days=30)
        total_balance = sum((u.balance for u in users), ZERO)
        return {
            "total_users": len(users),
            "active_users": sum(1 for u in users if u.status == UserStatus.ACTIVE),
            "admin_users": sum(1 for u in users if u.is_admin),
            "new_users": sum(1 for u in users if u.created_at >= since),
            "total_balance": total_balance,
            "average_balance": to_money(total_balance / len(users)) if users else ZERO,
        }

    def bank_metrics(self) -> Dict[str, Any]:
        """Deposits held by active users, in total and per bank"""
        breakdown: Dict[str, Dict[str, Any]] = {}
        for user in self.all_users():
            if user.status != UserStatus.ACTIVE:
                continue
            entry = breakdown.setdefault(user.bank_details.bank_name, {
                "bank_name": user.bank_details.bank_name,
                "total_balance": ZERO,
                "count": 0,
            })
            entry["total_balance"] += user.balance
            entry["count"] += 1

        for entry in breakdown.values():
            entry["average_balance"] = to_money(entry["total_balance"] / entry["count"])

        return {
            "total_deposits": sum((e["total_balance"] for e in breakdown.values()), ZERO),
            "bank_breakdown": sorted(breakdown.values(), key=lambda e: e["total_balance"], reverse=True),
        }

    def _parse_status(self, value: str) -> UserStatus:
        try:
            return UserStatus(value)
        except ValueError:
            raise ValidationError("Invalid status")

    def update_role(self, actor: User, user_id: str, role: str) -> User:
        try:
            new_role = UserRole(role)
        except ValueError:
            raise ValidationError("Invalid role")

        user = self.require_user(user_id)
        if user.id == actor.id:
            raise ValidationError("Cannot change your own role")

        old_role = user.role
        user.role = new_role
        self.save_user(user)

        self.audit_trail.log_event(
            event_type=AuditEventType.USER_ROLE_CHANGED,
            entity_type="user",
            entity_id=user.id,
            user_id=actor.id,
            metadata={"old_role": old_role.value, "new_role": new_role.value}
        )
        log_action(logger, "info", f"User role updated to {new_role.value}", user_id=actor.id,
                   action="update_role", resource=user.id)
        return user

    def update_status(self, actor: User, user_id: str, status: str) -> User:
        new_status = self._parse_status(status)

        user = self.require_user(user_id)
        if user.id == actor.id:
            raise ValidationError("Cannot change your own status")

        old_status = user.status
        user.status = new_status
        self.save_user(user)

        self.audit_trail.log_event(
            event_type=AuditEventType.USER_STATUS_CHANGED,
            entity_type="user",
            entity_id=user.id,
            user_id=actor.id,
            metadata={"old_status": old_status.value, "new_status": new_status.value}
        )
        log_action(logger, "info", f"User status updated to {new_status.value}", user_id=actor.id,
                   action="update_status", resource=user.id)
        return user

    def delete_user(self, actor: User, user_id: str) -> None:
        """Delete a user together with every document they own"""
        user = self.require_user(user_id)
        if user.id == actor.id:
            raise ValidationError("Cannot delete your own account")

        removed: Dict[str, int] = {}
        with self.storage.atomic():
            for table in OWNED_TABLES:
                owned = self.storage.find(table, {"user_id": user.id})
                for data in owned:
                    self.storage.delete(table, data["id"])
                removed[table] = len(owned)
            self.storage.delete(self.table_name, user.id)

            self.audit_trail.log_event(
                event_type=AuditEventType.USER_DELETED,
                entity_type="user",
                entity_id=user.id,
                user_id=actor.id,
                metadata={"email": user.email, "removed": removed}
            )
        log_action(logger, "info", "User deleted", user_id=actor.id,
                   action="delete_user", resource=user.id, extra=removed)

    # ------------------------------------------------------------------
    # Transfers and client data

    def transfer_recipients(self, user_id: str) -> List[Dict[str, Any]]:
        """Active, non-admin users other than the caller; balances are never included"""
        recipients = [
            {
                "id": u.id,
                "name": u.name,
                "email": u.email,
                "account_number": u.account_number,
            }
            for u in self.all_users()
            if u.id != user_id and not u.is_admin and u.status == UserStatus.ACTIVE
        ]
        recipients.sort(key=lambda r: r["name"].lower())
        return recipients

    def get_client_data(self, user_id: str) -> Dict[str, Any]:
        return self.require_user(user_id).client_data

    def update_client_data(self, user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge a partial ClientData update.

        Arrays replace the stored section, objects are shallow-merged and
        scalars are set; unknown sections are ignored. A ``token`` object is
        appended to the user's stored tokens and never returned.
        """
        user = self.require_user(user_id)
        for key, value in (updates or {}).items():
            if key not in CLIENT_DATA_SECTIONS:
                continue
            if isinstance(value, list):
                user.client_data[key] = value
            elif isinstance(value, dict):
                current = user.client_data.get(key)
                merged = dict(current) if isinstance(current, dict) else {}
                merged.update(value)
                user.client_data[key] = merged
            else:
                user.client_data[key] = value

        token_info = (updates or {}).get('token')
        if isinstance(token_info, dict) and token_info.get('token'):
            try:
                expiry = int(token_info.get('expiryTimestampMs'))
            except (TypeError, ValueError):
                expiry = int(time.time() * 1000) + 24 * 60 * 60 * 1000
            user.tokens.append({
                "token": token_info['token'],
                "expiryTimestampMs": expiry,
                "created_at": datetime.now(timezone.utc).isoformat(),
            })
            user.tokens = user.tokens[-MAX_STORED_TOKENS:]

        self.save_user(user)
        return user.client_data
