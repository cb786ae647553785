"""
API integration tests

Drives the HTTP surface end to end, mostly over an in-memory store: register,
login, balance, deposit, transfer, history, logout and the mapping of
domain errors to status codes.
"""

import pytest
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from fastapi.testclient import TestClient

from kodbank.api import create_app
from kodbank.api.dependencies import TOKEN_HEADER
from kodbank.storage import InMemoryStorage, SQLiteStorage
from kodbank.system import LedgerSystem

from conftest import TEST_PASSWORD, TEST_SECRET


@pytest.fixture
def api_system(config):
    system = LedgerSystem(config, InMemoryStorage())
    yield system
    system.close()


@pytest.fixture
def client(api_system):
    return TestClient(create_app(api_system))


def register(client, username, email=None):
    return client.post("/auth/register", json={
        "username": username,
        "password": TEST_PASSWORD,
        "email": email or f"{username}@example.com",
        "phone": "9876543210",
    })


def login(client, username):
    response = client.post("/auth/login", json={
        "username": username, "password": TEST_PASSWORD,
    })
    assert response.status_code == 200
    return response.json()["token"]


def auth(token):
    return {TOKEN_HEADER: token}


class TestHealth:

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["service"] == "kodbank_ledger"


class TestAuthEndpoints:

    def test_register(self, client):
        response = register(client, "alice")

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["user"]["username"] == "alice"
        assert data["user"]["role"] == "Customer"
        assert "password_hash" not in data["user"]

    def test_register_duplicate(self, client):
        register(client, "alice")
        response = register(client, "ALICE", email="other@example.com")

        assert response.status_code == 409
        assert response.json()["code"] == "ALREADY_EXISTS"

    def test_register_missing_fields(self, client):
        response = client.post("/auth/register", json={"username": "alice"})

        assert response.status_code == 400
        assert response.json() == {"error": "All fields are required", "code": "INVALID_INPUT"}

    def test_register_admin_role_rejected(self, client):
        response = client.post("/auth/register", json={
            "username": "root", "password": TEST_PASSWORD,
            "email": "root@example.com", "phone": "9876543210", "role": "Admin",
        })
        assert response.status_code == 400

    def test_login(self, client):
        register(client, "alice")
        response = client.post("/auth/login", json={
            "username": "alice", "password": TEST_PASSWORD,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["username"] == "alice"
        assert data["role"] == "Customer"
        assert data["token"].count(".") == 2
        assert "kodbank_token" in response.headers["set-cookie"]
        assert "HttpOnly" in response.headers["set-cookie"]

    def test_login_wrong_password(self, client):
        register(client, "alice")
        response = client.post("/auth/login", json={
            "username": "alice", "password": "not-the-password",
        })

        assert response.status_code == 401
        assert response.json() == {
            "error": "Invalid username or password", "code": "INVALID_CREDENTIALS",
        }

    def test_logout_revokes_session(self, client):
        register(client, "alice")
        token = login(client, "alice")

        response = client.post("/auth/logout", headers=auth(token))
        assert response.status_code == 200

        response = client.get("/account/balance", headers=auth(token))
        assert response.status_code == 401
        assert response.json()["reason"] == "revoked"


class TestAccountEndpoints:

    @pytest.fixture(autouse=True)
    def _customers(self, client):
        self.client = client
        register(client, "alice")
        register(client, "bob")
        self.token = login(client, "alice")

    def test_balance_requires_login(self):
        response = self.client.get("/account/balance")

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHENTICATED"
        assert response.json()["reason"] == "missing"

    def test_balance_with_garbage_token(self):
        response = self.client.get("/account/balance", headers=auth("garbage"))
        assert response.status_code == 401
        assert response.json()["reason"] == "invalid"

    def test_balance_with_token_header(self):
        response = self.client.get("/account/balance", headers=auth(self.token))

        assert response.status_code == 200
        assert response.json() == {
            "success": True, "balance": "100000.00", "username": "alice",
        }

    def test_balance_with_bearer(self):
        response = self.client.get(
            "/account/balance", headers={"Authorization": f"Bearer {self.token}"}
        )
        assert response.status_code == 200

    def test_balance_with_cookie(self, api_system):
        secure_client = TestClient(create_app(api_system), base_url="https://testserver")
        login(secure_client, "alice")

        response = secure_client.get("/account/balance")
        assert response.status_code == 200
        assert response.json()["username"] == "alice"

    @pytest.mark.parametrize("method,path", [
        ("get", "/account/balance"),
        ("post", "/account/deposit"),
        ("post", "/account/transfer"),
        ("get", "/account/history"),
    ])
    def test_expired_session_rejected_everywhere(self, api_system, method, path):
        """A validly signed token past its expiry is refused by every endpoint"""
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "alice", "role": "Customer", "iat": now - timedelta(hours=25),
             "exp": now - timedelta(hours=1), "jti": uuid.uuid4().hex},
            TEST_SECRET,
            algorithm="HS256",
        )
        api_system.storage.insert_session({
            "id": str(uuid.uuid4()), "token": token, "username": "alice",
            "created_at": (now - timedelta(hours=25)).isoformat(),
            "expires_at": (now - timedelta(hours=1)).isoformat(),
        })

        if method == "post":
            response = self.client.post(
                path, json={"to_username": "bob", "amount": 1}, headers=auth(token)
            )
        else:
            response = self.client.get(path, headers=auth(token))

        assert response.status_code == 401
        assert response.json()["reason"] == "expired"

    def test_deposit(self):
        response = self.client.post(
            "/account/deposit", json={"amount": "250"}, headers=auth(self.token)
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "newBalance": "100250.00",
            "message": "₹250 deposited successfully.",
        }

    def test_deposit_invalid_amount(self):
        response = self.client.post(
            "/account/deposit", json={"amount": -10}, headers=auth(self.token)
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_AMOUNT"

    def test_transfer(self):
        response = self.client.post(
            "/account/transfer",
            json={"to_username": "BOB", "amount": 500},
            headers=auth(self.token),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["newBalance"] == "99500.00"
        assert data["recipient"] == "bob"
        assert data["message"] == "₹500 transferred to bob successfully."

        bob = login(self.client, "bob")
        balance = self.client.get("/account/balance", headers=auth(bob)).json()
        assert balance["balance"] == "100500.00"

    @pytest.mark.parametrize("payload,status,code", [
        ({"to_username": "alice", "amount": 10}, 400, "SELF_TRANSFER_DENIED"),
        ({"amount": 10}, 400, "MISSING_RECIPIENT"),
        ({"to_username": "carol", "amount": 10}, 404, "RECIPIENT_NOT_FOUND"),
        ({"to_username": "bob", "amount": 100001}, 400, "INSUFFICIENT_FUNDS"),
        ({"to_username": "bob", "amount": 0}, 400, "INVALID_AMOUNT"),
    ])
    def test_transfer_rejections(self, payload, status, code):
        response = self.client.post(
            "/account/transfer", json=payload, headers=auth(self.token)
        )
        assert response.status_code == status
        assert response.json()["code"] == code

    def test_history(self):
        headers = auth(self.token)
        self.client.post("/account/transfer", json={"to_username": "bob", "amount": 500}, headers=headers)
        self.client.post("/account/deposit", json={"amount": 250}, headers=headers)

        response = self.client.get("/account/history", headers=headers)

        assert response.status_code == 200
        transactions = response.json()["transactions"]
        assert [t["type"] for t in transactions] == ["deposit", "transfer"]
        assert transactions[1]["from_username"] == "alice"
        assert transactions[1]["to_username"] == "bob"
        assert transactions[1]["amount"] == "500.00"


class TestAssistantEndpoints:

    def test_list_tools(self, client):
        response = client.get("/assistant/tools")

        assert response.status_code == 200
        names = [tool["function"]["name"] for tool in response.json()["tools"]]
        assert names == ["check_balance", "deposit_money", "transfer_money", "get_transactions"]

    def test_call_tool(self, client):
        register(client, "alice")
        token = login(client, "alice")

        response = client.post(
            "/assistant/tools/deposit_money",
            json={"arguments": {"amount": 100}},
            headers=auth(token),
        )

        assert response.status_code == 200
        assert response.json()["newBalance"] == "100100.00"

    def test_call_tool_without_login(self, client):
        response = client.post("/assistant/tools/check_balance", json={})

        assert response.status_code == 200
        assert response.json()["error"] == "User not logged in. Please login first."


class TestStoreBusyResponse:

    def test_locked_store_returns_503(self, config, tmp_path):
        db_path = tmp_path / "busy.db"
        system = LedgerSystem(config, SQLiteStorage(db_path, timeout=0.1))
        client = TestClient(create_app(system))
        register(client, "alice")
        token = login(client, "alice")

        blocker = sqlite3.connect(str(db_path), isolation_level=None)
        blocker.execute("BEGIN IMMEDIATE")
        try:
            response = client.post(
                "/account/deposit", json={"amount": 250}, headers=auth(token)
            )
        finally:
            blocker.execute("ROLLBACK")
            blocker.close()

        assert response.status_code == 503
        assert response.json() == {
            "error": "Service busy. Please try again.",
            "code": "TRANSIENT_STORE_FAILURE",
        }
        balance = client.get("/account/balance", headers=auth(token)).json()
        assert balance["balance"] == "100000.00"
        system.close()
