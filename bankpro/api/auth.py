"""
Authentication and authorization dependencies
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..banks import BankDirectory
from ..bills import BillManager
from ..branches import BranchLocator
from ..cards import CardManager
from ..config import BankProConfig, get_config
from ..errors import AuthenticationError, PermissionDenied
from ..notifications import NotificationManager
from ..processor import TransactionProcessor
from ..recurring import RecurringPaymentManager
from ..security import TokenService, CardCipher
from ..users import User, UserManager


class BankingSystem:
    """BankPro backend with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[BankProConfig] = None, seed_banks: bool = True):
        self.config = config or get_config()

        # Initialize storage
        if storage is None:
            storage = create_storage(self.config.storage_backend, self.config.database_path)
        self.storage = storage

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage)
        self.notifications = NotificationManager(self.storage)
        self.tokens = TokenService(self.config)
        self.user_manager = UserManager(
            self.storage, self.audit_trail, self.notifications, self.config, self.tokens
        )
        self.transaction_processor = TransactionProcessor(
            self.storage, self.audit_trail, self.user_manager, self.notifications, self.config
        )

        self.bank_directory = BankDirectory(self.storage, self.audit_trail)
        if seed_banks:
            self.bank_directory.seed_defaults()

        self.card_manager = CardManager(
            self.storage, self.audit_trail, CardCipher(self.config.card_encryption_key)
        )
        self.bill_manager = BillManager(
            self.storage, self.audit_trail, self.user_manager, self.notifications
        )
        self.recurring_manager = RecurringPaymentManager(self.storage)
        self.branch_locator = BranchLocator()


# Global banking system instance, created on first use
banking_system: Optional[BankingSystem] = None


def get_banking_system() -> BankingSystem:
    global banking_system
    if banking_system is None:
        banking_system = BankingSystem()
    return banking_system


def set_banking_system(system: Optional[BankingSystem]) -> None:
    """Replace the global instance (tests swap in in-memory systems)"""
    global banking_system
    banking_system = system


bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    system: BankingSystem = Depends(get_banking_system)
) -> User:
    """Dependency that validates the bearer token and returns the current user"""
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Not authorized to access this route")
    return system.user_manager.authenticate_token(credentials.credentials)


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise PermissionDenied(f"User role {user.role.value} is not authorized to access this route")
    return user
