"""
Identity and auth route tests.

Verifies:
- Token round trips for every role, expiry, and tampering
- Customer register/login and guest conversion linking orders
- Staff password login against configured hashes
"""

from datetime import timedelta

import pytest
from jose import jwt

from orderdesk.errors import UnauthorizedError
from orderdesk.models import Order
from orderdesk.services import identity_service
from orderdesk.services.identity_service import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_GUEST, ROLE_STAFF
from orderdesk.validation import ValidationError

from conftest import ADMIN_PASSWORD, CHEF_PASSWORD, auth_headers


# =============================================================================
# TOKENS
# =============================================================================


class TestTokens:
    def test_guest_round_trip(self, db_session):
        guest_id, token = identity_service.start_guest_session()

        principal = identity_service.verify(token)

        assert guest_id.startswith("guest_")
        assert principal.role == ROLE_GUEST
        assert principal.guest_id == guest_id
        assert principal.user_id is None
        assert not principal.is_staff

    def test_customer_round_trip(self, customer):
        user, headers = customer
        token = headers["Authorization"].split(" ", 1)[1]

        principal = identity_service.verify(token)

        assert principal.role == ROLE_CUSTOMER
        assert principal.user_id == user.id
        assert principal.email == user.email

    @pytest.mark.parametrize("token_type,role", [("admin", ROLE_ADMIN), ("chef", ROLE_STAFF)])
    def test_staff_round_trip(self, db_session, token_type, role):
        principal = identity_service.verify(identity_service.issue_token(token_type))

        assert principal.role == role
        assert principal.is_staff

    def test_expired_token_is_rejected(self, app, db_session):
        app.config["GUEST_TOKEN_TTL"] = timedelta(seconds=-1)
        try:
            _, token = identity_service.start_guest_session()
        finally:
            app.config["GUEST_TOKEN_TTL"] = timedelta(days=7)

        with pytest.raises(UnauthorizedError, match="expired"):
            identity_service.verify(token)

    def test_wrong_secret_is_rejected(self, db_session):
        forged = jwt.encode({"type": "admin"}, "not-the-secret", algorithm="HS256")

        with pytest.raises(UnauthorizedError):
            identity_service.verify(forged)

    def test_unknown_type_is_rejected(self, app, db_session):
        token = jwt.encode({"type": "superuser"}, app.config["JWT_SECRET"], algorithm="HS256")

        with pytest.raises(UnauthorizedError):
            identity_service.verify(token)

    def test_guest_without_id_is_rejected(self, app, db_session):
        token = jwt.encode({"type": "guest"}, app.config["JWT_SECRET"], algorithm="HS256")

        with pytest.raises(UnauthorizedError):
            identity_service.verify(token)

    @pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer "])
    def test_token_from_header_requires_bearer(self, header):
        assert identity_service.token_from_header(header) is None


# =============================================================================
# CUSTOMERS
# =============================================================================


class TestCustomers:
    def test_register_normalizes_email_and_hashes_password(self, db_session):
        user = identity_service.register_customer("  Pat@Example.COM ", "long-enough")

        assert user.email == "pat@example.com"
        assert user.password_hash != "long-enough"
        assert identity_service.verify_password("long-enough", user.password_hash)

    def test_duplicate_email_is_validation_error(self, customer):
        user, _ = customer
        with pytest.raises(ValidationError):
            identity_service.register_customer(user.email.upper(), "another-password")

    @pytest.mark.parametrize("email,password", [("not-an-email", "long-enough"), ("a@b.co", "short")])
    def test_register_validates_input(self, db_session, email, password):
        with pytest.raises(ValidationError):
            identity_service.register_customer(email, password)

    def test_login_route(self, client, customer):
        user, _ = customer

        resp = client.post("/api/auth/login", json={"email": user.email, "password": "correct-horse"})
        assert resp.status_code == 200
        assert resp.get_json()["user"]["id"] == user.id

        resp = client.post("/api/auth/login", json={"email": user.email, "password": "wrong"})
        assert resp.status_code == 401

    def test_register_route(self, client, db_session):
        resp = client.post("/api/auth/register", json={"email": "new@example.com", "password": "long-enough"})

        assert resp.status_code == 201
        token = resp.get_json()["token"]
        assert identity_service.verify(token).email == "new@example.com"

    def test_convert_links_guest_orders(self, client, db_session, guest, make_order):
        guest_id, headers = guest
        first = make_order(guest_id=guest_id)
        second = make_order(guest_id=guest_id)
        other = make_order(guest_id="guest_other")

        resp = client.post(
            "/api/auth/convert",
            json={"email": "convert@example.com", "password": "long-enough", "name": "Lee"},
            headers=headers,
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["linked_orders"] == 2
        db_session.expire_all()
        user_id = body["user"]["id"]
        assert db_session.get(Order, first.id).user_id == user_id
        assert db_session.get(Order, second.id).user_id == user_id
        assert db_session.get(Order, other.id).user_id is None

        # The new customer token can read the linked order
        new_headers = auth_headers(body["token"])
        assert client.get(f"/api/orders?order_id={first.id}", headers=new_headers).status_code == 200

    def test_convert_requires_guest_token(self, client, customer):
        resp = client.post(
            "/api/auth/convert",
            json={"email": "x@example.com", "password": "long-enough"},
            headers=customer[1],
        )
        assert resp.status_code == 403


# =============================================================================
# STAFF LOGIN / VERIFY
# =============================================================================


class TestStaffLogin:
    @pytest.mark.parametrize("path,password,role", [
        ("/api/auth/admin-login", ADMIN_PASSWORD, ROLE_ADMIN),
        ("/api/auth/chef-login", CHEF_PASSWORD, ROLE_STAFF),
    ])
    def test_login_issues_staff_token(self, client, db_session, path, password, role):
        resp = client.post(path, json={"password": password})

        assert resp.status_code == 200
        assert identity_service.verify(resp.get_json()["token"]).role == role

    def test_wrong_password_is_401(self, client, db_session):
        resp = client.post("/api/auth/chef-login", json={"password": ADMIN_PASSWORD})
        assert resp.status_code == 401

    def test_unconfigured_role_is_403(self, app, client, db_session):
        saved = app.config["ADMIN_PASSWORD_HASH"]
        app.config["ADMIN_PASSWORD_HASH"] = None
        try:
            resp = client.post("/api/auth/admin-login", json={"password": ADMIN_PASSWORD})
        finally:
            app.config["ADMIN_PASSWORD_HASH"] = saved
        assert resp.status_code == 403

    def test_verify_route(self, client, db_session, chef_headers):
        resp = client.get("/api/auth/verify", headers=chef_headers)
        assert resp.get_json() == {"valid": True, "role": ROLE_STAFF, "guest_id": None, "user_id": None, "email": None}

        resp = client.get("/api/auth/verify")
        assert resp.status_code == 401
        assert resp.get_json()["valid"] is False

    def test_guest_route(self, client, db_session):
        resp = client.post("/api/auth/guest")

        assert resp.status_code == 201
        body = resp.get_json()
        assert identity_service.verify(body["token"]).guest_id == body["guest_id"]
