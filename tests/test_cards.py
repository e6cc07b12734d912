"""
Test suite for card management
"""

import pytest
from decimal import Decimal

from bankpro.storage import InMemoryStorage
from bankpro.audit import AuditTrail
from bankpro.config import BankProConfig
from bankpro.errors import ValidationError, PermissionDenied, NotFoundError
from bankpro.notifications import NotificationManager
from bankpro.security import TokenService, CardCipher
from bankpro.cards import (
    CardManager, CardStatus, CardType, CardBrand, luhn_valid, luhn_check_digit,
    generate_card_number
)
from bankpro.users import UserManager


class TestLuhn:

    def test_known_numbers(self):
        assert luhn_valid("4111111111111111")
        assert luhn_valid("5500005555555559")
        assert not luhn_valid("4111111111111112")
        assert luhn_check_digit("411111111111111") == "1"

    def test_generated_numbers(self):
        for brand, prefix in ((CardBrand.VISA, "4"), (CardBrand.MASTERCARD, "5"),
                              (CardBrand.AMEX, "3"), (CardBrand.RUPAY, "6")):
            number = generate_card_number(brand)
            assert len(number) == 16
            assert number.startswith(prefix)
            assert luhn_valid(number)


class TestCardCipher:

    def test_round_trip_and_prefix(self):
        cipher = CardCipher("test-key")
        encrypted = cipher.encrypt("123")
        assert encrypted.startswith("ENC:")
        assert cipher.decrypt(encrypted) == "123"

    def test_wrong_key_fails(self):
        encrypted = CardCipher("key-one").encrypt("999")
        with pytest.raises(ValueError, match="Failed to decrypt card data"):
            CardCipher("key-two").decrypt(encrypted)


class TestCardManager:
    """Test card issue, PIN and status changes"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.config = BankProConfig(storage_backend="memory")
        self.audit_trail = AuditTrail(self.storage)
        self.user_manager = UserManager(
            self.storage, self.audit_trail, NotificationManager(self.storage), self.config,
            TokenService(self.config)
        )
        self.card_manager = CardManager(self.storage, self.audit_trail, CardCipher("test-key"))

        self.user = self.user_manager.register(
            name="Meera Iyer", email="meera@example.com", phone="9876543210", password="Secret@123"
        ).user
        self.other = self.user_manager.register(
            name="Kiran Shah", email="kiran@example.com", phone="9123456789", password="Secret@123"
        ).user

    def test_create_debit_card(self):
        card, cvv = self.card_manager.create_card(self.user, "debit", "visa", "Meera Iyer")

        assert card.card_type == CardType.DEBIT
        assert card.card_number.startswith("4")
        assert luhn_valid(card.card_number)
        assert card.account_number == self.user.account_number
        assert card.credit_limit == Decimal("0.00")
        assert len(cvv) == 3 and cvv.isdigit()
        # Stored encrypted, returned decrypted to the owner
        assert card.cvv != cvv
        assert self.card_manager.to_public_dict(card)["cvv"] == cvv
        assert card.expiry_year - card.created_at.year == 3

    def test_create_credit_card_with_limit(self):
        card, _ = self.card_manager.create_card(self.user, "credit", "mastercard", "Meera Iyer",
                                                credit_limit="50000")
        assert card.credit_limit == Decimal("50000.00")
        assert card.available_credit == Decimal("50000.00")

    def test_create_card_validation(self):
        with pytest.raises(ValidationError) as exc_info:
            self.card_manager.create_card(self.user, "prepaid", "diners", "", pin="12")
        fields = {d["field"] for d in exc_info.value.details["details"]}
        assert fields == {"card_type", "card_brand", "card_name", "pin"}

    def test_public_dict_hides_pin(self):
        card, _ = self.card_manager.create_card(self.user, "debit", "rupay", "Meera", pin="1234")
        public = self.card_manager.to_public_dict(card, include_cvv=False)

        assert "pin_hash" not in public
        assert "pin_salt" not in public
        assert "cvv" not in public
        assert public["has_pin"] is True
        assert public["expiry_date"] == card.expiry_date

    def test_set_and_change_pin(self):
        card, _ = self.card_manager.create_card(self.user, "debit", "visa", "Meera")
        card = self.card_manager.update_pin(self.user, card.id, "4321")
        assert card.has_pin

        with pytest.raises(ValidationError, match="Current PIN is incorrect"):
            self.card_manager.update_pin(self.user, card.id, "5555", current_pin="0000")

        card = self.card_manager.update_pin(self.user, card.id, "5555", current_pin="4321")
        assert card.has_pin

    def test_pin_rules(self):
        card, _ = self.card_manager.create_card(self.user, "debit", "visa", "Meera")
        with pytest.raises(ValidationError, match="at least 4 digits"):
            self.card_manager.update_pin(self.user, card.id, "12")
        with pytest.raises(ValidationError, match="PIN must be 4-6 digits"):
            self.card_manager.update_pin(self.user, card.id, "12ab")

    def test_pin_change_needs_active_card(self):
        card, _ = self.card_manager.create_card(self.user, "debit", "visa", "Meera")
        self.card_manager.update_status(self.user, card.id, "blocked")
        with pytest.raises(ValidationError, match="Card is not active"):
            self.card_manager.update_pin(self.user, card.id, "1234")

    def test_only_owner_updates_card(self):
        card, _ = self.card_manager.create_card(self.user, "debit", "visa", "Meera")
        with pytest.raises(PermissionDenied):
            self.card_manager.update_status(self.other, card.id, "blocked")
        with pytest.raises(NotFoundError):
            self.card_manager.update_status(self.user, "missing", "blocked")
        with pytest.raises(ValidationError, match="Invalid status"):
            self.card_manager.update_status(self.user, card.id, "frozen")

    def test_closed_cards_are_not_listed(self):
        first, _ = self.card_manager.create_card(self.user, "debit", "visa", "One")
        second, _ = self.card_manager.create_card(self.user, "credit", "amex", "Two")
        self.card_manager.create_card(self.other, "debit", "visa", "Not mine")

        self.card_manager.update_status(self.user, first.id, "closed")

        cards = self.card_manager.list_cards(self.user)
        assert [c.id for c in cards] == [second.id]
        assert cards[0].status == CardStatus.ACTIVE
