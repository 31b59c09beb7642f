# Overview: Service-layer operations for auth; registration with OTP, login and account creation.

"""
Authentication Service

Registration is two-step: register() parks the account in pending_users with
a 6-digit OTP (valid OTP_TTL_MINUTES) and hands the code to the email
sender; verify_otp() turns it into a customer account.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, 12 by default)
  as soon as they arrive; pending rows never hold plaintext.
- Minimum 8 characters with at least one letter and one digit.
- Session tokens managed separately (see session_service.py).
"""

import re
import secrets
from datetime import timedelta

import bcrypt
from flask import current_app

from ..enums import UserRole
from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import PendingUser, User
from bookstore.time_utils import as_utc_naive, utcnow
from . import session_service


class EmailDeliveryError(Exception):
    """Raised by an EmailSender when a message could not be handed off."""


class EmailSender:
    """Outbound email collaborator. Delivery mechanics live outside this service."""

    def send_otp(self, email: str, code: str) -> None:
        raise NotImplementedError


class LoggingEmailSender(EmailSender):
    """Default sender: writes the OTP to the application log."""

    def send_otp(self, email: str, code: str) -> None:
        current_app.logger.info(f"OTP for {email}: {code}")


def get_email_sender() -> EmailSender:
    return current_app.config.get("EMAIL_SENDER") or LoggingEmailSender()


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Raises AppError(WEAK_PASSWORD) if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise AppError(ErrorCode.WEAK_PASSWORD, message="Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise AppError(ErrorCode.WEAK_PASSWORD, message="Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise AppError(ErrorCode.WEAK_PASSWORD, message="Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe; a malformed stored hash never matches."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def generate_otp() -> str:
    return f"{secrets.randbelow(10 ** 6):06d}"


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _ensure_identity_available(username: str, email: str) -> None:
    if db.session.query(User).filter(User.email == email).first():
        raise AppError(ErrorCode.EMAIL_ALREADY_EXISTS, details={"email": email})
    if db.session.query(User).filter(User.username == username).first():
        raise AppError(ErrorCode.USERNAME_ALREADY_EXISTS, details={"username": username})


def _otp_expiry():
    return utcnow() + timedelta(minutes=current_app.config.get("OTP_TTL_MINUTES", 5))


def register(*, username: str, email: str, password: str, phone: str | None = None) -> PendingUser:
    """
    Start a registration.

    Re-registering an email that is still pending replaces its username,
    password and OTP. The OTP is sent after the pending row is committed; a
    delivery failure is logged and the caller can use resend_otp().
    """
    email = _normalize_email(email)
    username = (username or "").strip()

    _ensure_identity_available(username, email)
    password_hash = hash_password(password)

    taken = (
        db.session.query(PendingUser)
        .filter(PendingUser.username == username, PendingUser.email != email)
        .first()
    )
    if taken is not None:
        raise AppError(ErrorCode.USERNAME_ALREADY_EXISTS, details={"username": username})

    pending = db.session.query(PendingUser).filter_by(email=email).first()
    if pending is None:
        pending = PendingUser(email=email)
        db.session.add(pending)

    pending.username = username
    pending.phone = phone
    pending.password_hash = password_hash
    pending.otp_code = generate_otp()
    pending.otp_expires_at = _otp_expiry()
    db.session.commit()

    try:
        get_email_sender().send_otp(email, pending.otp_code)
    except EmailDeliveryError as exc:
        current_app.logger.warning(f"OTP delivery to {email} failed: {exc}")

    current_app.logger.info(f"Pending registration for {email}")
    return pending


def verify_otp(*, email: str, code: str) -> User:
    """Confirm a pending registration and create the customer account."""
    email = _normalize_email(email)
    pending = db.session.query(PendingUser).filter_by(email=email).first()
    if pending is None:
        raise AppError(ErrorCode.PENDING_REGISTRATION_NOT_FOUND, details={"email": email})

    if as_utc_naive(pending.otp_expires_at) < utcnow():
        raise AppError(ErrorCode.OTP_EXPIRED)

    if not secrets.compare_digest(str(code or "").strip(), pending.otp_code):
        raise AppError(ErrorCode.INVALID_OTP)

    _ensure_identity_available(pending.username, pending.email)

    user = User(
        username=pending.username,
        email=pending.email,
        phone=pending.phone,
        password_hash=pending.password_hash,
        role=UserRole.CUSTOMER.value,
        is_active=True,
    )
    db.session.add(user)
    db.session.delete(pending)
    db.session.commit()

    current_app.logger.info(f"Registered user {user.username} (id={user.id})")
    return user


def resend_otp(*, email: str) -> PendingUser:
    """Issue a fresh OTP; unlike register(), a delivery failure is reported."""
    email = _normalize_email(email)
    pending = db.session.query(PendingUser).filter_by(email=email).first()
    if pending is None:
        raise AppError(ErrorCode.PENDING_REGISTRATION_NOT_FOUND, details={"email": email})

    pending.otp_code = generate_otp()
    pending.otp_expires_at = _otp_expiry()
    db.session.commit()

    try:
        get_email_sender().send_otp(email, pending.otp_code)
    except EmailDeliveryError as exc:
        current_app.logger.warning(f"OTP delivery to {email} failed: {exc}")
        raise AppError(ErrorCode.EMAIL_SEND_FAILED, details={"email": email}) from exc

    return pending


def cleanup_expired_pending_users() -> int:
    """Delete pending registrations whose OTP has expired. Returns count deleted."""
    deleted = (
        db.session.query(PendingUser)
        .filter(PendingUser.otp_expires_at < utcnow())
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted


def create_user(
    *,
    username: str,
    email: str,
    password: str,
    role=UserRole.CUSTOMER,
    phone: str | None = None,
    full_name: str | None = None,
) -> User:
    """
    Create an active account directly (CLI and admin use).

    Raises WEAK_PASSWORD, EMAIL_ALREADY_EXISTS, USERNAME_ALREADY_EXISTS,
    VALIDATION_ERROR for an unknown role.
    """
    parsed_role = UserRole.parse(role)
    if parsed_role is None:
        raise AppError(
            ErrorCode.VALIDATION_ERROR,
            message=f"Unknown role: {role}",
            details={"allowed": UserRole.values()},
        )

    email = _normalize_email(email)
    username = (username or "").strip()
    _ensure_identity_available(username, email)

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=parsed_role.value,
        phone=phone,
        full_name=full_name,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Look up an active user by username or email and check the password.

    Returns None on any mismatch; updates last_login_at on success.
    """
    identifier = (identifier or "").strip()
    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier.lower()),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def login(
    *,
    identifier: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[User, str]:
    """Returns (user, plaintext_token); INVALID_CREDENTIALS otherwise."""
    user = authenticate(identifier, password)
    if user is None:
        current_app.logger.info(f"Failed login for {identifier!r}")
        raise AppError(ErrorCode.INVALID_CREDENTIALS)

    _, token = session_service.create_session(user.id, user_agent=user_agent, ip_address=ip_address)
    return user, token


def logout(token: str) -> bool:
    return session_service.revoke_session(token)
