# Overview: Service-layer operations for accounts; password hashing and credential checks.

"""
Account Service

Customers register themselves from the storefront; admins are created from
the CLI. Passwords are hashed with bcrypt (cost factor 12).
"""

import re

import bcrypt

from ..extensions import db
from ..models import User, USER_ROLES
from ..validation import ConflictError, ValidationError
from printshop.time_utils import utcnow

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def normalize_email(email: str) -> str:
    value = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValidationError("A valid email address is required")
    return value


def create_user(
    email: str,
    name: str,
    password: str,
    *,
    role: str = "customer",
    phone_number: str | None = None,
) -> User:
    """
    Create an account.

    Raises:
        ValidationError: bad email, blank name, unknown role
        PasswordValidationError: weak password
        ConflictError: email already registered
    """
    email = normalize_email(email)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("An account with this email already exists")

    user = User(
        email=email,
        name=name,
        phone_number=(phone_number or "").strip() or None,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """Return the active user for these credentials, or None."""
    try:
        email = normalize_email(email)
    except ValidationError:
        return None

    user = db.session.query(User).filter_by(email=email).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
