"""
Transaction Processing Module

Applies transactions to user balances: generic credit/debit/transfer
entries, reversal on delete, and money transfers between users (internal)
or to other banks (external, with a processing fee).

Every path that moves money runs inside ``storage.atomic()`` so the
balance updates and the records describing them are written together or
not at all, and a balance never goes negative.
"""

from decimal import Decimal
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any, Tuple

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .config import BankProConfig
from .errors import ValidationError, PermissionDenied, NotFoundError, MultipleAccountsError
from .logging_config import get_logger, log_action
from .money import to_money, format_inr, ZERO
from .notifications import NotificationManager, NotificationType
from .transactions import (
    Transaction, TransactionStore, TransactionType, TransferType, CATEGORIES
)
from .users import User, UserManager, UserStatus
from .validation import Validator, is_valid_ifsc


logger = get_logger("bankpro.transactions")


class TransactionProcessor:
    """
    Creates, reverses and transfers money between user accounts
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 user_manager: UserManager, notifications: NotificationManager,
                 config: BankProConfig):
        self.storage = storage
        self.audit_trail = audit_trail
        self.users = user_manager
        self.notifications = notifications
        self.config = config
        self.store = TransactionStore(storage)

    # ------------------------------------------------------------------
    # Access

    def get_transaction(self, actor: User, transaction_id: str, action: str = "view") -> Transaction:
        transaction = self.store.get(transaction_id)
        if not transaction:
            raise NotFoundError("Transaction not found")
        if transaction.user_id != actor.id and not actor.is_admin:
            raise PermissionDenied(f"Not authorized to {action} this transaction")
        return transaction

    def list_transactions(self, user: User, **filters: Any) -> Tuple[List[Transaction], Dict[str, int]]:
        return self.store.query(user.id, **filters)

    def stats(self, user: User, period: str = 'month') -> Dict[str, Any]:
        return self.store.stats(user.id, period)

    # ------------------------------------------------------------------
    # Generic transactions

    def create_transaction(
        self,
        actor: User,
        transaction_type: str,
        amount: Any,
        description: str,
        category: Optional[str] = None,
        recipient_id: Optional[str] = None,
        recipient_account: Optional[str] = None,
        recipient_name: Optional[str] = None
    ) -> Transaction:
        """
        Record a credit, debit or transfer against the actor's balance.

        Debits and transfers both reduce the actor's balance. A transfer
        with recipient_id also credits the recipient with a
        "Transfer from <name>" record.
        """
        validator = Validator()
        validator.choice(transaction_type, [t.value for t in TransactionType], "type",
                         "Invalid transaction type")
        amount = validator.amount(amount)
        validator.length(description, "description", 1, 200,
                         "Description is required and must be less than 200 characters")
        if category is not None:
            validator.choice(category, CATEGORIES, "category", "Invalid category")
        validator.raise_if_invalid()

        kind = TransactionType(transaction_type)
        with self.storage.atomic():
            user = self.users.require_user(actor.id)
            recipient = None
            if kind == TransactionType.TRANSFER and recipient_id:
                recipient = self.users.get_user(recipient_id)
                if not recipient:
                    raise NotFoundError("Recipient not found")
                if recipient.id == user.id:
                    raise ValidationError("Cannot transfer to your own account")

            if kind == TransactionType.CREDIT:
                user.balance += amount
            else:
                if user.balance < amount:
                    raise ValidationError("Insufficient balance")
                user.balance -= amount
            self.users.save_user(user)

            transaction = self.store.new(
                user_id=user.id,
                transaction_type=kind,
                amount=amount,
                balance=user.balance,
                description=description.strip(),
                category=category or 'other',
                recipient_id=recipient.id if recipient else recipient_id,
                recipient_account=recipient.account_number if recipient else recipient_account,
                recipient_name=recipient.name if recipient else recipient_name,
                transfer_type=TransferType.INTERNAL if recipient else None,
            )

            if recipient:
                recipient.balance += amount
                self.users.save_user(recipient)
                self.store.new(
                    user_id=recipient.id,
                    transaction_type=TransactionType.CREDIT,
                    amount=amount,
                    balance=recipient.balance,
                    description=f"Transfer from {user.name}",
                    category='transfer',
                    transfer_type=TransferType.INTERNAL,
                )

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_CREATED,
                entity_type="transaction",
                entity_id=transaction.id,
                user_id=user.id,
                metadata={"type": kind.value, "amount": amount, "balance": user.balance,
                          "recipient_id": recipient.id if recipient else None}
            )
        return transaction

    def update_transaction(self, actor: User, transaction_id: str,
                           description: Optional[str] = None,
                           category: Optional[str] = None) -> Transaction:
        """Only the description and category of a transaction can change"""
        transaction = self.get_transaction(actor, transaction_id, action="update")

        validator = Validator()
        if description is not None:
            validator.length(description, "description", 1, 200,
                             "Description is required and must be less than 200 characters")
        if category is not None:
            validator.choice(category, CATEGORIES, "category", "Invalid category")
        validator.raise_if_invalid()

        if description is not None:
            transaction.description = description.strip()
        if category is not None:
            transaction.category = category
        transaction.updated_at = datetime.now(timezone.utc)
        self.store.save(transaction)

        self.audit_trail.log_event(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction.id,
            user_id=actor.id,
            metadata={"description": transaction.description, "category": transaction.category}
        )
        return transaction

    def delete_transaction(self, actor: User, transaction_id: str) -> None:
        """
        Delete a transaction and reverse its effect on the owner's balance.

        Refused for transfer legs and fees, whose counterpart lives on
        another record, and when reversing a credit would leave the owner's
        balance negative.
        """
        with self.storage.atomic():
            transaction = self.get_transaction(actor, transaction_id, action="delete")
            if transaction.transfer_type is not None:
                raise ValidationError("Transfer transactions cannot be deleted")
            owner = self.users.get_user(transaction.user_id)

            if owner:
                if transaction.type == TransactionType.CREDIT:
                    if owner.balance < transaction.amount:
                        raise ValidationError(
                            "Cannot delete transaction: reversing it would make the balance negative")
                    owner.balance -= transaction.amount
                else:
                    owner.balance += transaction.amount
                self.users.save_user(owner)

            self.store.delete(transaction.id)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_DELETED,
                entity_type="transaction",
                entity_id=transaction.id,
                user_id=actor.id,
                metadata={"owner_id": transaction.user_id, "type": transaction.type.value,
                          "amount": transaction.amount,
                          "balance": owner.balance if owner else None}
            )

    # ------------------------------------------------------------------
    # Transfers

    def processing_fee(self, amount: Decimal, internal: bool) -> Decimal:
        """Internal transfers are free; external cost max(minimum, rate * amount)"""
        if internal:
            return ZERO
        fee = to_money(amount * Decimal(self.config.external_fee_rate))
        return max(to_money(self.config.external_fee_minimum), fee)

    def _validate_transfer(self, recipient_account: Optional[str], recipient_phone: Optional[str],
                           recipient_bank: Optional[Dict[str, Any]], amount: Any,
                           description: Optional[str]) -> Decimal:
        validator = Validator()
        if not recipient_account and not recipient_phone:
            validator.add("recipient", "Either recipient account or phone number is required")
        if recipient_phone:
            validator.phone(recipient_phone, "recipient_phone")
        if recipient_bank and not recipient_bank.get('bank_name'):
            validator.add("recipient_bank", "Bank name is required for external transfers")
        amount = validator.amount(amount)
        if description is not None and description != "":
            validator.length(description, "description", 1, 200,
                             "Description must be less than 200 characters")
        validator.raise_if_invalid()
        return amount

    def _find_recipient(self, recipient_account: Optional[str],
                        recipient_phone: Optional[str], purpose: str) -> Optional[User]:
        if recipient_account:
            return self.users.get_by_account_number(recipient_account)
        users = self.users.find_by_phone(recipient_phone)
        if len(users) > 1:
            raise MultipleAccountsError(
                f"Multiple accounts found for this phone number. {purpose}",
                accounts=[u.to_account_choice() for u in users]
            )
        return users[0] if users else None

    def preview_transfer(
        self,
        sender: User,
        amount: Any,
        recipient_account: Optional[str] = None,
        recipient_phone: Optional[str] = None,
        recipient_bank: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None
    ) -> Tuple[Dict[str, Any], str]:
        """Work out fee, total and recipient for a transfer without moving money"""
        amount = self._validate_transfer(recipient_account, recipient_phone, recipient_bank,
                                         amount, description)
        recipient = self._find_recipient(
            recipient_account, recipient_phone,
            "Please specify which account to transfer to.")
        if recipient and recipient.id == sender.id:
            raise ValidationError("Cannot transfer to your own account")

        sender = self.users.require_user(sender.id)
        internal = recipient is not None
        fee = self.processing_fee(amount, internal)
        total = amount + fee
        sufficient = sender.balance >= total

        preview = {
            "transfer_amount": amount,
            "processing_fee": fee,
            "total_debit": total,
            "transfer_type": TransferType.INTERNAL.value if internal else TransferType.EXTERNAL.value,
            "recipient_found": internal,
            "recipient_name": recipient.name if recipient else "External Account",
            "recipient_bank": (recipient.to_dict()['bank_details'] if recipient else recipient_bank),
            "sender_balance": sender.balance,
            "has_sufficient_balance": sufficient,
            "estimated_arrival": "Instant" if internal else "2-3 business days",
        }

        if not sufficient:
            message = "Insufficient balance for this transfer"
        elif fee > ZERO:
            message = (f"Transfer preview: {format_inr(amount)} transfer + {format_inr(fee)} fee"
                       f" = {format_inr(total)} total")
        else:
            message = f"Transfer preview: {format_inr(amount)} transfer"
        return preview, message

    def transfer(
        self,
        sender: User,
        amount: Any,
        recipient_account: Optional[str] = None,
        recipient_phone: Optional[str] = None,
        recipient_bank: Optional[Dict[str, Any]] = None,
        recipient_name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Send money to another BankPro user or to an account at another bank.

        Args:
            sender: Authenticated user sending the money
            amount: Amount to deliver to the recipient
            recipient_account: Recipient account number
            recipient_phone: Recipient phone, used when no account number is given
            recipient_bank: bank_name/ifsc_code/branch_name, required for external transfers
            recipient_name: Display name for external recipients
            description: Optional statement description

        Returns:
            Dictionary with the sender's transaction, a message, transfer type,
            amount, processing fee and total debited
        """
        amount = self._validate_transfer(recipient_account, recipient_phone, recipient_bank,
                                         amount, description)

        with self.storage.atomic():
            recipient = self._find_recipient(
                recipient_account, recipient_phone,
                "Please specify account number instead.")
            internal = recipient is not None

            if not internal:
                if not recipient_bank or not recipient_bank.get('bank_name') \
                        or not recipient_bank.get('ifsc_code'):
                    raise ValidationError("Recipient bank details are required for external transfers")
                if not is_valid_ifsc(recipient_bank['ifsc_code']):
                    raise ValidationError("Invalid IFSC code format")
                if not recipient_account:
                    raise ValidationError("Recipient account number is required for external transfers")

            sender = self.users.require_user(sender.id)
            if sender.status != UserStatus.ACTIVE:
                raise PermissionDenied("Your account is not active")
            if internal and recipient.id == sender.id:
                raise ValidationError("Cannot transfer to your own account")

            if sender.balance < amount:
                raise ValidationError("Insufficient balance")
            fee = self.processing_fee(amount, internal)
            total = amount + fee
            if sender.balance < total:
                raise ValidationError("Insufficient balance including processing fee")

            transfer_type = TransferType.INTERNAL if internal else TransferType.EXTERNAL
            recipient_label = recipient.name if internal else recipient_account

            sender.balance -= amount
            sender_transaction = self.store.new(
                user_id=sender.id,
                transaction_type=TransactionType.DEBIT,
                amount=amount,
                balance=sender.balance,
                description=(description or "").strip() or f"Transfer to {recipient_label}",
                category='transfer',
                transfer_type=transfer_type,
                recipient_id=recipient.id if internal else None,
                recipient_account=recipient.account_number if internal else recipient_account,
                recipient_name=recipient.name if internal else (recipient_name or "External Account"),
                recipient_bank=(recipient.to_dict()['bank_details'] if internal else dict(recipient_bank)),
            )

            if internal:
                recipient.balance += amount
                self.users.save_user(recipient)
                self.store.new(
                    user_id=recipient.id,
                    transaction_type=TransactionType.CREDIT,
                    amount=amount,
                    balance=recipient.balance,
                    description=f"Transfer from {sender.name}",
                    category='transfer',
                    transfer_type=TransferType.INTERNAL,
                    recipient_id=sender.id,
                    recipient_account=sender.account_number,
                    recipient_name=sender.name,
                )
            elif fee > ZERO:
                sender.balance -= fee
                self.store.new(
                    user_id=sender.id,
                    transaction_type=TransactionType.DEBIT,
                    amount=fee,
                    balance=sender.balance,
                    description=f"Processing fee for transfer to {recipient_account}",
                    category='fee',
                    transfer_type=TransferType.FEE,
                )

            self.users.save_user(sender)

            message = f"Successfully transferred {format_inr(amount)} to {recipient_label}"
            if not internal:
                message += f" ({recipient_bank['bank_name']})"
                if fee > ZERO:
                    message += (f". Processing fee: {format_inr(fee)}"
                                f" (Total debited: {format_inr(total)})")

            self.notifications.notify(
                sender.id, NotificationType.TRANSACTION,
                f"{format_inr(total)} debited from your account for transfer to {recipient_label}"
            )
            if internal:
                self.notifications.notify(
                    recipient.id, NotificationType.TRANSACTION,
                    f"{format_inr(amount)} credited to your account from {sender.name}"
                )

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSFER_COMPLETED,
                entity_type="transaction",
                entity_id=sender_transaction.id,
                user_id=sender.id,
                metadata={
                    "transfer_type": transfer_type.value,
                    "amount": amount,
                    "fee": fee,
                    "recipient_id": recipient.id if internal else None,
                    "recipient_account": sender_transaction.recipient_account,
                }
            )

        log_action(logger, "info", "Transfer completed", user_id=sender.id,
                   action="transfer", resource=sender_transaction.id,
                   extra={"transfer_type": transfer_type.value, "amount": str(amount), "fee": str(fee)})

        return {
            "transaction": sender_transaction.to_public_dict(),
            "message": message,
            "transfer_type": transfer_type.value,
            "transfer_amount": amount,
            "processing_fee": fee,
            "total_debited": total,
        }
