from __future__ import annotations

from sqlalchemy import select

from nomina.extensions import db
from nomina.models import User
from nomina.security import hash_password, verify_password


def _login(client, email: str = "admin@example.com", password: str = "password123"):
    return client.post("/login", json={"email": email, "password": password})


def test_password_hash_roundtrip():
    hashed = hash_password("password123")

    assert hashed != "password123"
    assert verify_password(hashed, "password123") is True
    assert verify_password(hashed, "wrong-password") is False


def test_login_selects_the_only_company(client, app):
    response = _login(client)

    assert response.status_code == 200
    body = response.get_json()
    assert body["user"]["email"] == "admin@example.com"
    assert body["active_company_id"] == str(app.config["TEST_COMPANY_IDS"]["a"])
    assert [company["role"] for company in body["companies"]] == ["administrador"]


def test_login_is_case_insensitive_on_email(client):
    assert _login(client, email="  Admin@Example.com ").status_code == 200


def test_login_rejects_bad_credentials(client):
    response = _login(client, password="not-the-password")

    assert response.status_code == 401
    assert response.get_json()["error"] == "Credenciales inválidas."


def test_login_validates_the_form(client):
    response = client.post("/login", json={"email": "not-an-email", "password": "x"})

    assert response.status_code == 400
    errors = response.get_json()["errors"]
    assert any(error.startswith("email:") for error in errors)
    assert any(error.startswith("password:") for error in errors)


def test_inactive_user_cannot_login(client, app):
    with app.app_context():
        user = db.session.execute(select(User).where(User.email == "viewer@example.com")).scalar_one()
        user.is_active = False
        db.session.commit()

    response = _login(client, email="viewer@example.com")

    assert response.status_code == 403


def test_multi_company_user_must_select_company(client, app):
    response = _login(client, email="multi@example.com")

    assert response.get_json()["active_company_id"] is None
    assert client.get("/").get_json()["next"] == "/select-company"

    company_b = str(app.config["TEST_COMPANY_IDS"]["b"])
    selected = client.post("/select-company", json={"company_id": company_b})

    assert selected.status_code == 200
    assert selected.get_json()["active_company_id"] == company_b
    assert client.get("/").get_json()["next"] == "/api/periods"


def test_select_company_rejects_foreign_company(client, app):
    _login(client)

    response = client.post("/select-company", json={"company_id": str(app.config["TEST_COMPANY_IDS"]["b"])})

    assert response.status_code == 403
    assert response.get_json()["error"] == "Empresa no permitida."


def test_select_company_requires_a_choice(client):
    _login(client, email="multi@example.com")

    response = client.post("/select-company", json={})

    assert response.status_code == 400


def test_logout_clears_the_session(client):
    _login(client)

    assert client.post("/logout").status_code == 200

    assert client.get("/api/periods").status_code == 401
    assert client.get("/").get_json() == {"authenticated": False, "next": "/login"}


def test_csrf_token_endpoint(client):
    response = client.get("/csrf-token")

    assert response.status_code == 200
    assert response.get_json()["csrf_token"]


def test_health(client):
    assert client.get("/health").get_json() == {"status": "ok"}
