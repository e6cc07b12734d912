"""
Integration tests for the BankPro API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from bankpro.api import create_app
from bankpro.api import auth as api_auth
from bankpro.api.auth import BankingSystem, set_banking_system
from bankpro.config import BankProConfig
from bankpro.storage import InMemoryStorage
from bankpro.users import UserRole


PASSWORD = "Secret@123"
HDFC = {"bank_name": "HDFC Bank", "ifsc_code": "HDFC0001234", "branch_name": "MG Road"}


def _config(**overrides):
    settings = dict(storage_backend="memory", enable_rate_limiting=False, log_level="WARNING")
    settings.update(overrides)
    return BankProConfig(**settings)


@pytest.fixture
def system():
    """In-memory banking system swapped in for the global instance"""
    original = api_auth.banking_system
    test_system = BankingSystem(storage=InMemoryStorage(), config=_config())
    set_banking_system(test_system)
    yield test_system
    set_banking_system(original)


@pytest.fixture
def client(system):
    """Create a test client for the API with initialized banking system"""
    return TestClient(create_app(system.config))


def _headers(token):
    return {"Authorization": f"Bearer {token}"}


def _register(client, name="Priya Nair", email="priya@example.com", phone="9876543210",
              initial_deposit="10000", **extra):
    body = {"name": name, "email": email, "phone": phone, "password": PASSWORD,
            "initial_deposit": initial_deposit}
    body.update(extra)
    r = client.post("/api/auth/register", json=body)
    assert r.status_code == 201, r.json()
    return r.json()["data"]


def _admin_token(client, system):
    system.user_manager.register(
        name="Admin User", email="admin@example.com", phone="9999999999",
        password=PASSWORD, role=UserRole.ADMIN
    )
    r = client.post("/api/auth/login", json={"identifier": "admin@example.com", "password": PASSWORD})
    return r.json()["data"]["token"]


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["message"] == "Bank Management API is running"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert r.json()["endpoints"]["transactions"] == "/api/transactions"

    def test_unknown_route(self, client):
        r = client.get("/api/nowhere")
        assert r.status_code == 404
        assert r.json() == {"success": False, "error": "Route /api/nowhere not found"}

    def test_wrong_method(self, client):
        r = client.delete("/api/auth/login")
        assert r.status_code == 405
        assert r.json()["success"] is False


class TestAuthFlow:
    """Registration, login and token handling"""

    def test_register_and_me(self, client):
        data = _register(client)
        user = data["user"]

        assert user["balance"] == "10000.00"
        assert user["account_number"].startswith("ACC-")
        assert "password_hash" not in user
        assert data["refresh_token"]

        r = client.get("/api/auth/me", headers=_headers(data["token"]))
        assert r.status_code == 200
        assert r.json()["data"]["email"] == "priya@example.com"

    def test_register_validation_errors(self, client):
        r = client.post("/api/auth/register", json={"name": "P", "email": "bad", "phone": "1",
                                                    "password": "short"})
        assert r.status_code == 400
        body = r.json()
        assert body["success"] is False
        assert "Please provide a valid email" in body["error"]
        assert len(body["details"]) == 4

    def test_schema_type_errors_are_400(self, client):
        r = client.post("/api/auth/login", json={"identifier": ["not", "a", "string"], "password": "x"})
        assert r.status_code == 400
        body = r.json()
        assert body["success"] is False
        assert body["details"][0]["field"] == "identifier"

    def test_login_and_refresh(self, client):
        _register(client)
        r = client.post("/api/auth/login", json={"identifier": "priya@example.com", "password": PASSWORD})
        assert r.status_code == 200
        session = r.json()["data"]

        r = client.post("/api/auth/refresh", json={"refresh_token": session["refresh_token"]})
        assert r.status_code == 200
        new_token = r.json()["data"]["token"]
        assert client.get("/api/auth/me", headers=_headers(new_token)).status_code == 200

    def test_wrong_password(self, client):
        _register(client)
        r = client.post("/api/auth/login", json={"identifier": "priya@example.com", "password": "Wrong@123"})
        assert r.status_code == 401
        assert r.json() == {"success": False, "error": "Invalid credentials"}

    def test_lockout_returns_423(self, client, system):
        _register(client)
        for _ in range(system.config.max_login_attempts):
            client.post("/api/auth/login", json={"identifier": "priya@example.com", "password": "Wrong@123"})

        r = client.post("/api/auth/login", json={"identifier": "priya@example.com", "password": PASSWORD})
        assert r.status_code == 423

    def test_shared_phone_needs_account_selection(self, client):
        _register(client, email="first@example.com")
        second = _register(client, name="Priya Second", email="second@example.com")["user"]

        r = client.post("/api/auth/login", json={"identifier": "9876543210", "password": PASSWORD})
        assert r.status_code == 300
        body = r.json()
        assert body["needs_account_selection"] is True
        assert len(body["accounts"]) == 2

        r = client.post("/api/auth/login-account", json={
            "identifier": "9876543210", "password": PASSWORD, "account_id": second["id"]
        })
        assert r.status_code == 200
        assert r.json()["data"]["user"]["id"] == second["id"]

    def test_missing_and_invalid_tokens(self, client):
        r = client.get("/api/auth/me")
        assert r.status_code == 401
        assert r.json()["error"] == "Not authorized to access this route"

        r = client.get("/api/auth/me", headers=_headers("garbage"))
        assert r.status_code == 401
        assert r.json()["error"] == "Invalid token"

    def test_password_reset(self, client):
        _register(client)
        r = client.post("/api/auth/forgotpassword", json={"email": "priya@example.com"})
        assert r.status_code == 200
        reset_token = r.json()["data"]

        r = client.get(f"/api/auth/resetpassword/{reset_token}")
        assert r.json()["data"] == {"email": "priya@example.com"}

        r = client.put(f"/api/auth/resetpassword/{reset_token}", json={"password": "Brand@New1"})
        assert r.status_code == 200
        assert r.json()["message"] == "Password reset successful"

        r = client.post("/api/auth/login", json={"identifier": "priya@example.com", "password": "Brand@New1"})
        assert r.status_code == 200

    def test_update_details_and_password(self, client):
        token = _register(client)["token"]

        r = client.put("/api/auth/updatedetails", headers=_headers(token),
                       json={"occupation": "Doctor", "address": {"city": "Kochi"}})
        assert r.status_code == 200
        profile = r.json()["data"]["profile"]
        assert profile["occupation"] == "Doctor"
        assert profile["address"]["city"] == "Kochi"

        r = client.put("/api/auth/updatepassword", headers=_headers(token),
                       json={"current_password": PASSWORD, "new_password": "Other@456"})
        assert r.status_code == 200
        assert r.json()["data"]["token"]

    def test_logout(self, client):
        token = _register(client)["token"]
        r = client.post("/api/auth/logout", headers=_headers(token))
        assert r.json() == {"success": True, "data": {}, "message": "Logged out successfully"}


class TestMoneyFlow:
    """Transactions and transfers through the API"""

    def test_transaction_crud(self, client):
        token = _register(client)["token"]

        r = client.post("/api/transactions", headers=_headers(token), json={
            "type": "debit", "amount": 499.5, "description": "Headphones", "category": "shopping"
        })
        assert r.status_code == 201
        transaction = r.json()["data"]
        assert transaction["amount"] == "499.50"
        assert transaction["balance"] == "9500.50"

        r = client.put(f"/api/transactions/{transaction['id']}", headers=_headers(token),
                       json={"description": "Wireless headphones"})
        assert r.json()["data"]["description"] == "Wireless headphones"

        r = client.get("/api/transactions?type=debit", headers=_headers(token))
        body = r.json()
        assert body["pagination"]["total"] == 1
        assert body["data"][0]["id"] == transaction["id"]

        r = client.delete(f"/api/transactions/{transaction['id']}", headers=_headers(token))
        assert r.json()["message"] == "Transaction deleted successfully"

        r = client.get("/api/auth/me", headers=_headers(token))
        assert r.json()["data"]["balance"] == "10000.00"

        r = client.get(f"/api/transactions/{transaction['id']}", headers=_headers(token))
        assert r.status_code == 404

    def test_insufficient_balance(self, client):
        token = _register(client, initial_deposit="100")["token"]
        r = client.post("/api/transactions", headers=_headers(token), json={
            "type": "debit", "amount": "100.01", "description": "Too much"
        })
        assert r.status_code == 400
        assert r.json()["error"] == "Insufficient balance"

    def test_malformed_date_filter_is_400(self, client):
        token = _register(client)["token"]
        r = client.get("/api/transactions?start_date=yesterday", headers=_headers(token))
        assert r.status_code == 400
        assert r.json()["success"] is False
        assert r.json()["error"] == "Invalid start_date"

        r = client.get("/api/transactions?end_date=2024-13-45", headers=_headers(token))
        assert r.status_code == 400
        assert r.json()["error"] == "Invalid end_date"

    def test_internal_transfer(self, client):
        sender = _register(client)
        recipient = _register(client, name="Rahul Verma", email="rahul@example.com",
                              phone="9123456789", initial_deposit="0")

        r = client.post("/api/transactions/transfer", headers=_headers(sender["token"]), json={
            "recipient_account": recipient["user"]["account_number"],
            "amount": "2500",
            "description": "Rent"
        })
        assert r.status_code == 201
        body = r.json()
        assert body["message"] == "Successfully transferred ₹2,500.00 to Rahul Verma"
        assert body["data"]["processing_fee"] == "0.00"

        me = client.get("/api/auth/me", headers=_headers(recipient["token"])).json()["data"]
        assert me["balance"] == "2500.00"

        r = client.get("/api/notifications", headers=_headers(recipient["token"]))
        assert r.json()["unread_count"] == 1

    def test_external_transfer_preview_and_execute(self, client):
        token = _register(client)["token"]
        body = {"recipient_account": "50100012345678", "recipient_bank": HDFC,
                "recipient_name": "Ravi", "amount": "4000"}

        r = client.post("/api/transactions/validate-transfer", headers=_headers(token), json=body)
        preview = r.json()
        assert preview["data"]["processing_fee"] == "20.00"
        assert preview["data"]["total_debit"] == "4020.00"
        assert preview["message"].startswith("Transfer preview")

        r = client.post("/api/transactions/transfer", headers=_headers(token), json=body)
        assert r.status_code == 201
        assert r.json()["data"]["total_debited"] == "4020.00"

        me = client.get("/api/auth/me", headers=_headers(token)).json()["data"]
        assert me["balance"] == "5980.00"

    def test_categories_and_stats(self, client):
        token = _register(client)["token"]
        r = client.get("/api/transactions/categories", headers=_headers(token))
        assert "bill_payment" in r.json()["data"]

        r = client.get("/api/transactions/stats?period=week", headers=_headers(token))
        assert r.json()["data"]["total_credits"] == "10000.00"


class TestCardsBillsAndPayments:

    def test_card_lifecycle(self, client):
        token = _register(client)["token"]

        r = client.post("/api/cards", headers=_headers(token), json={
            "card_type": "debit", "card_brand": "rupay", "card_name": "Priya Nair"
        })
        assert r.status_code == 201
        card = r.json()["data"]
        assert "cvv" not in card
        cvv = card["one_time_cvv"]

        listed = client.get("/api/cards", headers=_headers(token)).json()["data"]
        assert listed[0]["cvv"] == cvv

        r = client.put(f"/api/cards/{card['id']}/pin", headers=_headers(token), json={"new_pin": "2468"})
        assert r.json() == {"success": True, "message": "PIN updated successfully"}

        r = client.put(f"/api/cards/{card['id']}/status", headers=_headers(token), json={"status": "blocked"})
        assert r.json()["data"]["status"] == "blocked"

    def test_pay_bill(self, client):
        token = _register(client)["token"]
        r = client.post("/api/bills", headers=_headers(token), json={
            "type": "internet", "name": "Airtel Fibre", "bill_number": "AF-77",
            "account_number": "AIRTEL123", "amount": "999", "due_date": "2030-05-01"
        })
        assert r.status_code == 201
        bill = r.json()["data"]

        r = client.post(f"/api/bills/{bill['id']}/pay", headers=_headers(token))
        assert r.status_code == 200
        assert r.json()["data"]["status"] == "paid"

        me = client.get("/api/auth/me", headers=_headers(token)).json()["data"]
        assert me["balance"] == "9001.00"

    def test_recurring_payment(self, client):
        token = _register(client)["token"]
        r = client.post("/api/recurring", headers=_headers(token), json={
            "name": "Gym", "type": "subscription", "amount": "1500", "frequency": "monthly",
            "start_date": "2024-01-31", "to_account": "GYM-1", "beneficiary_name": "FitZone"
        })
        assert r.status_code == 201
        payment = r.json()["data"]

        r = client.post(f"/api/recurring/{payment['id']}/record-payment", headers=_headers(token))
        assert r.json()["data"]["next_due_date"] == "2024-02-29"

    def test_client_data(self, client):
        token = _register(client)["token"]
        r = client.put("/api/users/me/client-data", headers=_headers(token),
                       json={"goals": [{"name": "Vacation"}]})
        assert r.json()["data"]["goals"] == [{"name": "Vacation"}]

        r = client.get("/api/users/me/client-data", headers=_headers(token))
        assert r.json()["data"]["goals"][0]["name"] == "Vacation"

    def test_branches(self, client):
        token = _register(client)["token"]
        r = client.get("/api/branches?lat=12.97&lng=77.59&radius=5", headers=_headers(token))
        assert r.status_code == 200
        assert r.json()["data"]["bank"] == "BankPro"

        r = client.get("/api/branches", headers=_headers(token))
        assert r.status_code == 400


class TestAdminEndpoints:

    def test_non_admin_is_forbidden(self, client):
        token = _register(client)["token"]
        r = client.get("/api/users", headers=_headers(token))
        assert r.status_code == 403
        assert r.json()["error"] == "User role user is not authorized to access this route"

    def test_admin_manages_users(self, client, system):
        user = _register(client)
        admin_token = _admin_token(client, system)

        r = client.get("/api/users?limit=1", headers=_headers(admin_token))
        assert r.status_code == 200
        assert r.json()["pagination"]["total"] == 2

        r = client.put(f"/api/users/{user['user']['id']}/status", headers=_headers(admin_token),
                       json={"status": "suspended"})
        assert r.status_code == 200

        r = client.get("/api/auth/me", headers=_headers(user["token"]))
        assert r.status_code == 403
        assert r.json()["error"] == "Your account has been blocked by admin."

        r = client.delete(f"/api/users/{user['user']['id']}", headers=_headers(admin_token))
        assert r.json()["message"] == "User deleted successfully"

    def test_banks(self, client, system):
        r = client.get("/api/banks")
        assert any(b["id"] == "sbi" for b in r.json()["data"])

        admin_token = _admin_token(client, system)
        body = {"name": "Canara Bank", "ifsc_prefix": "CNRB", "description": "Public sector bank"}
        r = client.post("/api/banks", headers=_headers(admin_token), json=body)
        assert r.status_code == 201
        assert r.json()["data"]["id"] == "canara-bank"

        r = client.post("/api/banks", headers=_headers(admin_token), json=body)
        assert r.status_code == 409

    def test_audit_log(self, client, system):
        _register(client)
        admin_token = _admin_token(client, system)

        r = client.get("/api/admin/audit?event_type=user_registered", headers=_headers(admin_token))
        body = r.json()
        assert len(body["data"]) == 2
        assert body["integrity"]["valid"] is True

        r = client.get("/api/admin/audit?event_type=nonsense", headers=_headers(admin_token))
        assert r.status_code == 400


class TestRateLimiting:

    def test_auth_endpoints_are_limited(self, system):
        client = TestClient(create_app(_config(enable_rate_limiting=True, auth_rate_limit=2)))

        for _ in range(2):
            r = client.post("/api/auth/login", json={})
            assert r.status_code == 400

        r = client.post("/api/auth/login", json={})
        assert r.status_code == 429
        assert r.json()["error"] == "Too many requests, please try again later."

        # Reads are not counted
        assert client.get("/health").status_code == 200
