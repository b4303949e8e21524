"""Test registration, login and session handling."""

from models import Role
from security import hash_password, verify_password


class TestPasswordHashing:
    def test_hash_and_verify(self):
        digest = hash_password("secret123")

        assert digest != "secret123"
        assert verify_password("secret123", digest)
        assert not verify_password("wrong", digest)

    def test_malformed_digest_does_not_verify(self):
        assert not verify_password("secret123", "not-a-bcrypt-hash")


class TestRegister:
    def test_register_worker_with_tools(self, client, users_repo):
        response = client.post(
            "/api/register",
            data={
                "email": "walt@example.com",
                "password": "secret123",
                "role": "worker",
                "name": "Walt",
                "area": "Praha 6",
                "tools": ["mower, trimmer", "ladder", "mower"],
            },
        )

        assert response.status_code == 200
        user = users_repo.users[response.json()["userId"]]
        assert user.role == Role.WORKER
        assert user.area == "Praha 6"
        assert user.tools == ["mower", "trimmer", "ladder"]
        assert verify_password("secret123", user.password_digest)

    def test_customer_tools_are_ignored(self, client, users_repo):
        response = client.post(
            "/api/register",
            data={"email": "c@example.com", "password": "pw", "role": "customer", "name": "C", "tools": "mower"},
        )

        assert users_repo.users[response.json()["userId"]].tools == []

    def test_duplicate_email(self, client):
        form = {"email": "dup@example.com", "password": "pw", "role": "customer", "name": "Dup"}
        assert client.post("/api/register", data=form).status_code == 200

        response = client.post("/api/register", data=form)

        assert response.status_code == 409
        assert response.json()["error"] == "conflict_state"

    def test_email_is_case_sensitive(self, client):
        form = {"email": "Case@example.com", "password": "pw", "role": "customer", "name": "Case"}
        assert client.post("/api/register", data=form).status_code == 200

        response = client.post("/api/register", data={**form, "email": "case@example.com"})

        assert response.status_code == 200

    def test_admin_cannot_self_register(self, client):
        response = client.post(
            "/api/register",
            data={"email": "boss@example.com", "password": "pw", "role": "admin", "name": "Boss"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "validation_failed"

    def test_unknown_role(self, client):
        response = client.post(
            "/api/register",
            data={"email": "x@example.com", "password": "pw", "role": "gardener", "name": "X"},
        )

        assert response.status_code == 422

    def test_overlong_password(self, client):
        response = client.post(
            "/api/register",
            data={"email": "x@example.com", "password": "p" * 73, "role": "customer", "name": "X"},
        )

        assert response.status_code == 422


class TestLogin:
    def test_login_sets_session(self, login_as):
        session = login_as("carol@example.com", name="Carol")

        response = session.get("/api/check-auth")

        assert response.status_code == 200
        data = response.json()
        assert data["authenticated"] is True
        assert data["name"] == "Carol"
        assert data["email"] == "carol@example.com"
        assert data["role"] == "customer"

    def test_wrong_password(self, client, login_as):
        login_as("carol@example.com")

        response = client.post("/api/login", data={"email": "carol@example.com", "password": "nope"})

        assert response.status_code == 401
        assert response.json()["error"] == "authentication_required"

    def test_unknown_email(self, client):
        response = client.post("/api/login", data={"email": "ghost@example.com", "password": "x"})

        assert response.status_code == 401

    def test_anonymous_check_auth(self, client):
        assert client.get("/api/check-auth").json() == {"authenticated": False}

    def test_logout_clears_session(self, login_as):
        session = login_as("carol@example.com")

        assert session.post("/api/logout").status_code == 200

        assert session.get("/api/check-auth").json() == {"authenticated": False}

    def test_deleted_user_session_is_dropped(self, login_as, users_repo):
        session = login_as("carol@example.com")
        users_repo.users.clear()

        assert session.get("/api/check-auth").json() == {"authenticated": False}
