# Overview: Bearer credential issuance and verification for the four actor kinds.

"""
Identity & Session Service

WHY: Every order read or mutation is gated by who is calling. This module
issues signed, time-limited bearer tokens and turns a presented token back
into a Principal, or refuses it.

ROLES:
    guest     anonymous, carries a generated guest id        (7 days)
    customer  registered user, carries user id + email       (30 days)
    admin     staff, may mutate any order                    (8 hours)
    staff     kitchen (chef), may mutate any order           (12 hours)

Tokens are never stored server-side. Expiry is embedded in the signature;
revocation is the client deleting its token.

The token "type" claim keeps the wire names used by the web client
(guest/user/admin/chef); verify() maps them onto the roles above.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import timedelta

import bcrypt
from flask import current_app
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.exc import IntegrityError

from ..errors import UnauthorizedError
from ..extensions import db
from ..models import Order, User
from ..time_utils import utcnow
from ..validation import ValidationError


ROLE_GUEST = "guest"
ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"
ROLE_STAFF = "staff"

STAFF_ROLES = frozenset({ROLE_ADMIN, ROLE_STAFF})
CUSTOMER_ROLES = frozenset({ROLE_GUEST, ROLE_CUSTOMER})

# token "type" claim -> role
_TYPE_TO_ROLE = {
    "guest": ROLE_GUEST,
    "user": ROLE_CUSTOMER,
    "admin": ROLE_ADMIN,
    "chef": ROLE_STAFF,
}

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class Principal:
    """Validated caller identity."""
    role: str
    subject_id: str | None = None
    email: str | None = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def guest_id(self) -> str | None:
        return self.subject_id if self.role == ROLE_GUEST else None

    @property
    def user_id(self) -> int | None:
        if self.role != ROLE_CUSTOMER or self.subject_id is None:
            return None
        return int(self.subject_id)


# =============================================================================
# TOKENS
# =============================================================================

def _ttl_for(token_type: str) -> timedelta:
    cfg = current_app.config
    return {
        "guest": cfg["GUEST_TOKEN_TTL"],
        "user": cfg["CUSTOMER_TOKEN_TTL"],
        "admin": cfg["ADMIN_TOKEN_TTL"],
        "chef": cfg["CHEF_TOKEN_TTL"],
    }[token_type]


def issue_token(token_type: str, **claims) -> str:
    """Sign a token of the given wire type; extra claims are embedded as-is."""
    if token_type not in _TYPE_TO_ROLE:
        raise ValueError(f"Unknown token type: {token_type}")
    now = utcnow()
    payload = {
        "type": token_type,
        "iat": now,
        "exp": now + _ttl_for(token_type),
        **claims,
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config["JWT_ALGORITHM"],
    )


def verify(token: str | None) -> Principal:
    """
    Verify a bearer token and return the caller's Principal.

    Raises:
        UnauthorizedError: missing, malformed, expired, or unknown-type token
    """
    if not token:
        raise UnauthorizedError("Authentication required")
    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except JWTError:
        raise UnauthorizedError("Invalid token")

    role = _TYPE_TO_ROLE.get(claims.get("type"))
    if role == ROLE_GUEST:
        if not claims.get("guest_id"):
            raise UnauthorizedError("Invalid token")
        return Principal(role=role, subject_id=claims["guest_id"])
    if role == ROLE_CUSTOMER:
        if not claims.get("user_id") or not claims.get("email"):
            raise UnauthorizedError("Invalid token")
        return Principal(role=role, subject_id=str(claims["user_id"]), email=claims["email"])
    if role in STAFF_ROLES:
        return Principal(role=role)
    raise UnauthorizedError("Invalid token")


def token_from_header(header: str | None) -> str | None:
    if not header or not header.startswith("Bearer "):
        return None
    return header.split(" ", 1)[1].strip() or None


# =============================================================================
# PASSWORDS
# =============================================================================

def hash_password(password: str) -> str:
    """bcrypt hash, cost factor 12."""
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# =============================================================================
# SESSIONS
# =============================================================================

def start_guest_session() -> tuple[str, str]:
    """Returns (guest_id, token)."""
    guest_id = f"guest_{uuid.uuid4()}"
    return guest_id, issue_token("guest", guest_id=guest_id)


def customer_token(user: User) -> str:
    return issue_token("user", user_id=str(user.id), email=user.email)


def _normalize_email(email: str | None) -> str:
    normalized = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError("A valid email is required")
    return normalized


def register_customer(email: str, password: str, name: str = "", phone: str = "") -> User:
    """
    Create a customer account.

    Raises:
        ValidationError: bad email, short password, or email already registered
    """
    email = _normalize_email(email)
    if not password or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")

    if db.session.query(User).filter_by(email=email).first():
        raise ValidationError("Email already registered")

    now = utcnow()
    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name or "",
        phone=phone or "",
        created_at=now,
        updated_at=now,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("Email already registered")
    return user


def authenticate_customer(email: str, password: str) -> User:
    user = db.session.query(User).filter_by(email=(email or "").strip().lower()).first()
    if not user or not verify_password(password or "", user.password_hash):
        raise UnauthorizedError("Invalid credentials")
    return user


def convert_guest(guest_id: str, email: str, password: str, name: str = "", phone: str = "") -> tuple[User, int]:
    """
    Register a customer from a guest session and link the guest's orders.

    Returns (user, linked_order_count).
    """
    if not guest_id:
        raise ValidationError("guest_id is required")
    user = register_customer(email, password, name=name, phone=phone)
    user.converted_guest_id = guest_id

    linked = (
        db.session.query(Order)
        .filter(Order.guest_id == guest_id)
        .update({Order.user_id: user.id, Order.updated_at: utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    return user, linked


def authenticate_staff(role: str, password: str) -> str:
    """
    Check a staff password against the configured bcrypt hash.

    Returns a signed token for the staff role ("admin" or "chef").
    """
    config_key = {"admin": "ADMIN_PASSWORD_HASH", "chef": "CHEF_PASSWORD_HASH"}[role]
    configured = current_app.config.get(config_key)
    if not configured:
        raise UnauthorizedError(f"{role.capitalize()} access is not configured", forbidden=True)
    if not verify_password(password or "", configured):
        raise UnauthorizedError(f"Invalid {role} password")
    return issue_token(role)
