"""
Maintenance Commands

    python -m bankpro.maintenance create-admin [--email ... --password ...]
    python -m bankpro.maintenance seed-banks
    python -m bankpro.maintenance clear-database --yes
    python -m bankpro.maintenance list-users
"""

import argparse
import sys
from typing import Dict, List, Optional, Any

from .api.auth import BankingSystem
from .audit import AuditTrail, AuditEventType
from .banks import BankDirectory
from .config import get_config
from .logging_config import setup_logging, get_logger, log_action
from .money import format_inr
from .storage import StorageInterface, create_storage
from .users import User, UserManager, UserRole


logger = get_logger("bankpro.maintenance")

DEFAULT_ADMIN_EMAIL = "admin@bankpro.com"
DEFAULT_ADMIN_PASSWORD = "Admin@123"
DEFAULT_ADMIN_PHONE = "9999999999"
DEFAULT_ADMIN_BALANCE = "100000"


def create_admin(user_manager: UserManager, email: str = DEFAULT_ADMIN_EMAIL,
                 password: str = DEFAULT_ADMIN_PASSWORD, name: str = "System Administrator",
                 phone: str = DEFAULT_ADMIN_PHONE,
                 balance: str = DEFAULT_ADMIN_BALANCE) -> Optional[User]:
    """Create the admin user; returns None when that email is already registered"""
    if user_manager.email_exists(email):
        return None
    session = user_manager.register(
        name=name,
        email=email,
        phone=phone,
        password=password,
        initial_deposit=balance,
        role=UserRole.ADMIN
    )
    user = session.user
    user.profile['occupation'] = 'System Administrator'
    user_manager.save_user(user)
    log_action(logger, "info", "Admin user created", user_id=user.id, action="create_admin", resource="user")
    return user


def seed_banks(directory: BankDirectory) -> int:
    """Add the popular banks that are missing; returns how many were added"""
    return directory.seed_defaults()


def clear_database(storage: StorageInterface, audit_trail: AuditTrail) -> Dict[str, int]:
    """
    Remove every document from every collection.

    The audit trail is cleared too and restarts with a single
    DATABASE_CLEARED event recording what was removed.
    """
    removed: Dict[str, int] = {}
    with storage.atomic():
        for table in storage.list_tables():
            removed[table] = storage.count(table)
            storage.clear_table(table)
        audit_trail.log_event(
            event_type=AuditEventType.DATABASE_CLEARED,
            entity_type="database",
            entity_id="all",
            metadata={"removed": removed}
        )
    log_action(logger, "warning", "Database cleared", action="clear_database", extra=removed)
    return removed


def list_users(user_manager: UserManager) -> List[Dict[str, Any]]:
    rows = []
    for user in sorted(user_manager.all_users(), key=lambda u: u.created_at):
        rows.append({
            "name": user.name,
            "email": user.email,
            "phone": user.phone,
            "role": user.role.value,
            "status": user.status.value,
            "account_number": user.account_number,
            "balance": format_inr(user.balance),
        })
    return rows


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bankpro.maintenance", description="BankPro maintenance commands")
    parser.add_argument("--backend", choices=["sqlite", "memory"], help="Storage backend (default from config)")
    parser.add_argument("--database", help="SQLite database path (default from config)")
    commands = parser.add_subparsers(dest="command", required=True)

    admin = commands.add_parser("create-admin", help="Create the admin user")
    admin.add_argument("--email", default=DEFAULT_ADMIN_EMAIL)
    admin.add_argument("--password", default=DEFAULT_ADMIN_PASSWORD)
    admin.add_argument("--name", default="System Administrator")
    admin.add_argument("--phone", default=DEFAULT_ADMIN_PHONE)
    admin.add_argument("--balance", default=DEFAULT_ADMIN_BALANCE)

    commands.add_parser("seed-banks", help="Insert the default bank directory")

    clear = commands.add_parser("clear-database", help="Delete all data")
    clear.add_argument("--yes", action="store_true", help="Confirm deletion")

    commands.add_parser("list-users", help="Print all users")
    return parser


def main(argv: Optional[List[str]] = None, storage: Optional[StorageInterface] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    setup_logging(level=config.log_level, log_format="text")

    if storage is None:
        storage = create_storage(args.backend or config.storage_backend,
                                 args.database or config.database_path)
    system = BankingSystem(storage=storage, config=config, seed_banks=False)

    if args.command == "create-admin":
        user = create_admin(system.user_manager, email=args.email, password=args.password,
                            name=args.name, phone=args.phone, balance=args.balance)
        if user is None:
            print("Admin user already exists!")
            return 0
        print("✅ Admin user created successfully!")
        print(f"   Email: {user.email}")
        print(f"   Account Number: {user.account_number}")
        print(f"   Balance: {format_inr(user.balance)}")

    elif args.command == "seed-banks":
        added = seed_banks(system.bank_directory)
        print(f"✅ Seeded {added} bank(s); {len(system.bank_directory.list_banks())} in directory")

    elif args.command == "clear-database":
        if not args.yes:
            print("Refusing to clear the database without --yes")
            return 1
        removed = clear_database(system.storage, system.audit_trail)
        for table, count in sorted(removed.items()):
            print(f"🗑️  Cleared {count} documents from {table}")
        print("🎉 Database cleared successfully!")

    elif args.command == "list-users":
        rows = list_users(system.user_manager)
        if not rows:
            print("No users found")
        for row in rows:
            print(f"{row['name']} <{row['email']}> {row['phone']} {row['role']}/{row['status']} "
                  f"{row['account_number']} {row['balance']}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
