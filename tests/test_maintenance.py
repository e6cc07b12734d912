"""
Tests for the maintenance commands
"""

from decimal import Decimal

from bankpro.storage import InMemoryStorage
from bankpro.audit import AuditEventType
from bankpro.api.auth import BankingSystem
from bankpro.config import BankProConfig
from bankpro.banks import POPULAR_BANKS
from bankpro.maintenance import create_admin, clear_database, list_users, main
from bankpro.users import UserRole


class TestMaintenanceFunctions:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.system = BankingSystem(storage=self.storage,
                                    config=BankProConfig(storage_backend="memory"),
                                    seed_banks=False)

    def test_create_admin(self):
        admin = create_admin(self.system.user_manager)

        assert admin.role == UserRole.ADMIN
        assert admin.email == "admin@bankpro.com"
        assert admin.balance == Decimal("100000.00")
        assert self.system.user_manager.get_user(admin.id).profile["occupation"] == "System Administrator"

        # Second run is a no-op
        assert create_admin(self.system.user_manager) is None

    def test_clear_database(self):
        create_admin(self.system.user_manager)
        self.system.bank_directory.seed_defaults()

        removed = clear_database(self.storage, self.system.audit_trail)

        assert removed["users"] == 1
        assert removed["banks"] == len(POPULAR_BANKS)
        assert self.storage.count("users") == 0
        assert self.storage.count("transactions") == 0

        events = self.system.audit_trail.get_recent_events()
        assert [e.event_type for e in events] == [AuditEventType.DATABASE_CLEARED]
        assert self.system.audit_trail.verify_integrity()["valid"] is True

    def test_list_users(self):
        create_admin(self.system.user_manager)
        rows = list_users(self.system.user_manager)
        assert rows == [{
            "name": "System Administrator",
            "email": "admin@bankpro.com",
            "phone": "9999999999",
            "role": "admin",
            "status": "active",
            "account_number": rows[0]["account_number"],
            "balance": "₹100,000.00",
        }]


class TestMaintenanceCommand:

    def test_create_admin_and_list(self, capsys):
        storage = InMemoryStorage()

        assert main(["create-admin", "--email", "root@bankpro.com"], storage=storage) == 0
        assert "Admin user created successfully" in capsys.readouterr().out

        assert main(["create-admin", "--email", "root@bankpro.com"], storage=storage) == 0
        assert "Admin user already exists" in capsys.readouterr().out

        assert main(["list-users"], storage=storage) == 0
        assert "root@bankpro.com" in capsys.readouterr().out

    def test_seed_banks(self, capsys):
        storage = InMemoryStorage()
        assert main(["seed-banks"], storage=storage) == 0
        assert f"Seeded {len(POPULAR_BANKS)} bank(s)" in capsys.readouterr().out

        assert main(["seed-banks"], storage=storage) == 0
        assert "Seeded 0 bank(s)" in capsys.readouterr().out

    def test_clear_database_needs_confirmation(self, capsys):
        storage = InMemoryStorage()
        main(["create-admin"], storage=storage)
        capsys.readouterr()

        assert main(["clear-database"], storage=storage) == 1
        assert storage.count("users") == 1

        assert main(["clear-database", "--yes"], storage=storage) == 0
        assert storage.count("users") == 0
        assert "Database cleared successfully" in capsys.readouterr().out
