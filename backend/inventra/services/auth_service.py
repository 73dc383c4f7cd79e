"""
Authentication Service

WHY: Every product and invoice belongs to an account. Uses bcrypt for secure
password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import bcrypt
import re
from ..extensions import db
from ..models import User
from ..validation import ConflictError, ValidationError, EMAIL_RE
from inventra.time_utils import utcnow

PROFILE_MUTABLE_FIELDS = {"first_name", "last_name"}


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns True if password matches hash, False otherwise.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def register_user(
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """
    Create a new account.

    Raises:
        ValidationError: malformed email or weak password
        ConflictError: email already registered
    """
    email = normalize_email(email)
    if not EMAIL_RE.fullmatch(email):
        raise ValidationError("Please enter a valid email address")

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("An account with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Return the active user matching the credentials, or None.

    Unknown email, wrong password and deactivated account are not
    distinguished to the caller.
    """
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def update_profile(user: User, patch: dict) -> User:
    for key, value in patch.items():
        if key not in PROFILE_MUTABLE_FIELDS:
            raise ValidationError(f"Field not allowed: {key}")
        setattr(user, key, (value or "").strip() or None)
    db.session.commit()
    return user
