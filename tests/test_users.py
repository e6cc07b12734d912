"""
Test suite for users module

Tests registration rules, email/phone login with account selection,
lockout, password reset, admin management and client data merging.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone, timedelta

from bankpro.storage import InMemoryStorage
from bankpro.audit import AuditTrail, AuditEventType
from bankpro.config import BankProConfig
from bankpro.errors import (
    ValidationError, AuthenticationError, PermissionDenied, NotFoundError,
    AccountLockedError, MultipleAccountsError
)
from bankpro.notifications import NotificationManager, NotificationType
from bankpro.security import TokenService, REFRESH_TOKEN
from bankpro.transactions import TransactionStore, TransactionType
from bankpro.users import UserManager, UserRole, UserStatus, generate_account_number


PASSWORD = "Secret@123"


class TestUserManager:
    """Test user lifecycle"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.config = BankProConfig(storage_backend="memory")
        self.audit_trail = AuditTrail(self.storage)
        self.notifications = NotificationManager(self.storage)
        self.tokens = TokenService(self.config)
        self.user_manager = UserManager(
            self.storage, self.audit_trail, self.notifications, self.config, self.tokens
        )

    def _register(self, name="Asha Rao", email="asha@example.com", phone="9876543210",
                  deposit=None, **kwargs):
        return self.user_manager.register(
            name=name, email=email, phone=phone, password=PASSWORD,
            initial_deposit=deposit, **kwargs
        )

    def _admin(self):
        return self._register(name="Admin User", email="admin@example.com", phone="9999999999",
                              role=UserRole.ADMIN).user

    def test_register_user(self):
        session = self._register(email="Asha@Example.com", deposit="2500")
        user = session.user

        assert user.email == "asha@example.com"
        assert user.balance == Decimal("2500.00")
        assert user.role == UserRole.USER
        assert user.status == UserStatus.ACTIVE
        assert user.account_number.startswith("ACC-")
        assert user.bank_details.bank_name == "BankPro"
        assert user.bank_details.ifsc_code == "BANK0001234"
        assert session.token and session.refresh_token

        # Opening deposit is recorded as a credit
        transactions = TransactionStore(self.storage).for_user(user.id)
        assert len(transactions) == 1
        assert transactions[0].type == TransactionType.CREDIT
        assert transactions[0].category == "deposit"
        assert transactions[0].balance == Decimal("2500.00")

    def test_register_without_deposit_has_no_transactions(self):
        user = self._register().user
        assert user.balance == Decimal("0.00")
        assert TransactionStore(self.storage).for_user(user.id) == []

    def test_register_with_bank_details(self):
        user = self._register(bank_details={"bank_name": "HDFC Bank", "ifsc_code": "HDFC0001234"}).user
        assert user.bank_details.bank_name == "HDFC Bank"
        assert user.bank_details.ifsc_code == "HDFC0001234"
        assert user.bank_details.branch_name == "Main Branch"

    def test_register_reports_every_invalid_field(self):
        with pytest.raises(ValidationError) as exc_info:
            self.user_manager.register(name="A", email="not-an-email", phone="123",
                                       password="weak")

        error = exc_info.value
        fields = {d["field"] for d in error.details["details"]}
        assert fields == {"name", "email", "phone", "password"}
        assert "Please provide a valid email" in error.message
        assert "; " in error.message

    def test_password_rules(self):
        with pytest.raises(ValidationError, match="uppercase letter"):
            self.user_manager.register(name="Asha Rao", email="a@example.com",
                                       phone="9876543210", password="alllowercase1!")

    def test_negative_deposit_rejected(self):
        with pytest.raises(ValidationError, match="Initial deposit must be a positive number"):
            self._register(deposit="-5")

    def test_duplicate_email_rejected(self):
        self._register()
        with pytest.raises(ValidationError, match="Email already registered"):
            self._register(phone="9123456789")

    def test_phone_shared_by_at_most_three_accounts(self):
        for index in range(3):
            self._register(email=f"user{index}@example.com")

        check = self.user_manager.check_phone_limit("9876543210")
        assert check["count"] == 3
        assert check["can_register"] is False

        with pytest.raises(ValidationError, match="Maximum 3 accounts allowed per phone number"):
            self._register(email="fourth@example.com")

    def test_account_numbers_are_unique(self):
        numbers = {generate_account_number() for _ in range(50)}
        assert len(numbers) == 50

    def test_login_by_email(self):
        user = self._register().user
        session = self.user_manager.login("ASHA@example.com", PASSWORD)

        assert session.user.id == user.id
        assert session.user.security.last_login is not None
        assert self.user_manager.authenticate_token(session.token).id == user.id

    def test_login_by_phone_single_account(self):
        user = self._register().user
        assert self.user_manager.login("9876543210", PASSWORD).user.id == user.id

    def test_login_by_shared_phone_needs_account_selection(self):
        first = self._register(email="one@example.com").user
        second = self._register(email="two@example.com").user

        with pytest.raises(MultipleAccountsError) as exc_info:
            self.user_manager.login("9876543210", PASSWORD)

        error = exc_info.value
        assert error.status_code == 300
        assert {a["id"] for a in error.accounts} == {first.id, second.id}
        assert error.details["needs_account_selection"] is True

        session = self.user_manager.login_with_account("9876543210", PASSWORD, second.id)
        assert session.user.id == second.id

    def test_login_with_account_checks_identifier(self):
        user = self._register().user
        with pytest.raises(AuthenticationError):
            self.user_manager.login_with_account("other@example.com", PASSWORD, user.id)

    def test_login_with_deleted_account(self):
        with pytest.raises(PermissionDenied, match="deleted by admin"):
            self.user_manager.login_with_account("9876543210", PASSWORD, "missing-id")

    def test_invalid_credentials(self):
        self._register()
        with pytest.raises(AuthenticationError, match="Invalid credentials"):
            self.user_manager.login("asha@example.com", "Wrong@123")
        with pytest.raises(AuthenticationError, match="Invalid credentials"):
            self.user_manager.login("nobody@example.com", PASSWORD)

    def test_account_locks_after_repeated_failures(self):
        user = self._register().user

        for _ in range(self.config.max_login_attempts):
            with pytest.raises(AuthenticationError):
                self.user_manager.login("asha@example.com", "Wrong@123")

        # Even the right password is refused while locked
        with pytest.raises(AccountLockedError):
            self.user_manager.login("asha@example.com", PASSWORD)

        locked = self.user_manager.get_user(user.id)
        assert locked.is_locked
        events = self.audit_trail.get_events_for_entity("user", user.id)
        assert AuditEventType.USER_LOCKED in [e.event_type for e in events]

    def test_lock_expires(self):
        user = self._register().user
        user.security.lock_until = datetime.now(timezone.utc) - timedelta(minutes=1)
        self.user_manager.save_user(user)

        session = self.user_manager.login("asha@example.com", PASSWORD)
        assert session.user.security.lock_until is None

    def test_blocked_user_cannot_login_or_use_token(self):
        admin = self._admin()
        session = self._register()
        self.user_manager.update_status(admin, session.user.id, "suspended")

        with pytest.raises(PermissionDenied, match="blocked by admin"):
            self.user_manager.login("asha@example.com", PASSWORD)
        with pytest.raises(PermissionDenied):
            self.user_manager.authenticate_token(session.token)

    def test_refresh_token(self):
        session = self._register()
        token = self.user_manager.refresh(session.refresh_token)
        assert self.user_manager.authenticate_token(token).id == session.user.id

        # An access token is not a refresh token
        with pytest.raises(AuthenticationError, match="Invalid refresh token"):
            self.user_manager.refresh(session.token)
        with pytest.raises(AuthenticationError, match="Refresh token is required"):
            self.user_manager.refresh(None)

    def test_refresh_token_is_not_an_access_token(self):
        session = self._register()
        with pytest.raises(AuthenticationError):
            self.user_manager.authenticate_token(session.refresh_token)
        assert self.tokens.decode(session.refresh_token, REFRESH_TOKEN)["sub"] == session.user.id

    def test_update_password(self):
        user = self._register().user
        with pytest.raises(AuthenticationError, match="Current password is incorrect"):
            self.user_manager.update_password(user.id, "Wrong@123", "Newpass@456")

        token = self.user_manager.update_password(user.id, PASSWORD, "Newpass@456")
        assert self.user_manager.authenticate_token(token).id == user.id
        assert self.user_manager.login("asha@example.com", "Newpass@456").user.id == user.id

    def test_password_reset_flow(self):
        user = self._register().user
        raw_token = self.user_manager.forgot_password("asha@example.com")

        stored = self.user_manager.get_user(user.id)
        assert stored.security.password_reset_token != raw_token  # only the digest is stored
        assert self.user_manager.verify_reset_token(raw_token).id == user.id

        self.user_manager.reset_password(raw_token, "Fresh@7890")
        assert self.user_manager.login("asha@example.com", "Fresh@7890").user.id == user.id

        # Tokens are single use
        with pytest.raises(ValidationError, match="Invalid password reset token"):
            self.user_manager.reset_password(raw_token, "Again@7890")

    def test_expired_reset_token(self):
        user = self._register().user
        raw_token = self.user_manager.forgot_password("asha@example.com")
        stored = self.user_manager.get_user(user.id)
        stored.security.password_reset_expires = datetime.now(timezone.utc) - timedelta(seconds=1)
        self.user_manager.save_user(stored)

        with pytest.raises(ValidationError, match="expired"):
            self.user_manager.verify_reset_token(raw_token)

    def test_forgot_password_unknown_email(self):
        with pytest.raises(NotFoundError):
            self.user_manager.forgot_password("nobody@example.com")

    def test_update_details(self):
        user = self._register().user
        updated = self.user_manager.update_details(user.id, {
            "name": "Asha R",
            "occupation": "Engineer",
            "theme": "dark",
            "bank_name": "SBI",
        })

        assert updated.name == "Asha R"
        assert updated.profile["occupation"] == "Engineer"
        assert updated.preferences["theme"] == "dark"
        assert updated.bank_details.bank_name == "SBI"

        with pytest.raises(ValidationError, match="Theme must be light or dark"):
            self.user_manager.update_details(user.id, {"theme": "blue"})

    def test_update_details_rejects_taken_email(self):
        self._register(email="taken@example.com")
        user = self._register(email="mine@example.com").user
        with pytest.raises(ValidationError, match="Email already registered"):
            self.user_manager.update_details(user.id, {"email": "taken@example.com"})

    def test_update_user_own_or_admin(self):
        admin = self._admin()
        first = self._register(email="one@example.com").user
        second = self._register(email="two@example.com", phone="9123456789").user

        with pytest.raises(PermissionDenied):
            self.user_manager.update_user(first, second.id, {"name": "Someone Else"})

        # Status changes are ignored unless an admin makes them
        self.user_manager.update_user(first, first.id, {"status": "suspended"})
        assert self.user_manager.get_user(first.id).status == UserStatus.ACTIVE

        self.user_manager.update_user(admin, second.id, {"status": "inactive"})
        assert self.user_manager.get_user(second.id).status == UserStatus.INACTIVE

    def test_admin_cannot_change_own_role_or_status(self):
        admin = self._admin()
        with pytest.raises(ValidationError, match="Cannot change your own role"):
            self.user_manager.update_role(admin, admin.id, "user")
        with pytest.raises(ValidationError, match="Cannot change your own status"):
            self.user_manager.update_status(admin, admin.id, "inactive")
        with pytest.raises(ValidationError, match="Invalid role"):
            self.user_manager.update_role(admin, admin.id, "superuser")

    def test_admin_cannot_change_own_status_through_profile_update(self):
        admin = self._admin()
        with pytest.raises(ValidationError, match="Cannot change your own status"):
            self.user_manager.update_user(admin, admin.id, {"name": "Renamed Admin",
                                                            "status": "suspended"})

        stored = self.user_manager.get_user(admin.id)
        assert stored.status == UserStatus.ACTIVE
        assert stored.name == "Admin User"

        # Other fields can still be edited on the admin's own record
        self.user_manager.update_user(admin, admin.id, {"name": "Renamed Admin"})
        assert self.user_manager.get_user(admin.id).name == "Renamed Admin"

    def test_list_users_pagination(self):
        for index in range(5):
            self._register(email=f"user{index}@example.com", phone=f"98765432{index:02d}")

        users, pagination = self.user_manager.list_users(page=2, limit=2)
        assert len(users) == 2
        assert pagination == {"page": 2, "limit": 2, "total": 5, "pages": 3}

    def test_user_stats_and_bank_metrics(self):
        self._register(email="one@example.com", deposit="1000")
        self._register(email="two@example.com", deposit="3000",
                       bank_details={"bank_name": "HDFC Bank", "ifsc_code": "HDFC0001234"})

        stats = self.user_manager.user_stats()
        assert stats["total_users"] == 2
        assert stats["total_balance"] == Decimal("4000.00")
        assert stats["average_balance"] == Decimal("2000.00")

        metrics = self.user_manager.bank_metrics()
        assert metrics["total_deposits"] == Decimal("4000.00")
        assert [b["bank_name"] for b in metrics["bank_breakdown"]] == ["HDFC Bank", "BankPro"]

    def test_delete_user_removes_owned_documents(self):
        admin = self._admin()
        user = self._register(deposit="500").user
        self.notifications.notify(user.id, NotificationType.SYSTEM, "hello")

        self.user_manager.delete_user(admin, user.id)

        assert self.user_manager.get_user(user.id) is None
        assert self.storage.find("transactions", {"user_id": user.id}) == []
        assert self.storage.find("notifications", {"user_id": user.id}) == []

        with pytest.raises(ValidationError, match="Cannot delete your own account"):
            self.user_manager.delete_user(admin, admin.id)

    def test_transfer_recipients_exclude_self_admins_and_blocked(self):
        admin = self._admin()
        me = self._register(name="Zed Kumar", email="me@example.com").user
        other = self._register(name="Anil Das", email="other@example.com").user
        blocked = self._register(name="Bina Roy", email="blocked@example.com",
                                 phone="9123456789").user
        self.user_manager.update_status(admin, blocked.id, "suspended")

        recipients = self.user_manager.transfer_recipients(me.id)
        assert [r["id"] for r in recipients] == [other.id]
        assert "balance" not in recipients[0]

    def test_client_data_merge(self):
        user = self._register().user
        self.user_manager.update_client_data(user.id, {
            "goals": [{"name": "Car", "target": 500000}],
            "budgets": {"food": 5000},
        })
        data = self.user_manager.update_client_data(user.id, {
            "budgets": {"rent": 15000},
            "goals": [],
            "unknownSection": {"x": 1},
            "token": {"token": "device-token", "expiryTimestampMs": 1700000000000},
        })

        assert data["goals"] == []
        assert data["budgets"] == {"food": 5000, "rent": 15000}
        assert "unknownSection" not in data
        assert "token" not in data

        stored = self.user_manager.get_user(user.id)
        assert stored.tokens[-1]["token"] == "device-token"

    def test_public_dict_hides_secrets(self):
        user = self._register().user
        public = user.to_public_dict()
        for hidden in ("password_hash", "password_salt", "tokens", "client_data"):
            assert hidden not in public
        assert public["security"]["is_locked"] is False
