"""Registration with OTP, login and bearer sessions."""

from datetime import timedelta

import pytest

from bookstore.enums import UserRole
from bookstore.errors import AppError, ErrorCode
from bookstore.models import PendingUser, User
from bookstore.services import auth_service, session_service
from bookstore.time_utils import utcnow

from conftest import PASSWORD


def _register(email="carol@example.com", username="carol", password=PASSWORD):
    return auth_service.register(username=username, email=email, password=password)


class TestRegistration:

    def test_register_parks_account_and_sends_otp(self, db_session, email_sender):
        pending = _register(email="Carol@Example.com ")

        assert pending.email == "carol@example.com"
        assert pending.password_hash != PASSWORD
        assert email_sender.sent == [("carol@example.com", pending.otp_code)]
        assert db_session.query(User).count() == 0

    def test_verify_creates_customer(self, db_session, email_sender):
        _register()
        code = email_sender.sent[-1][1]

        user = auth_service.verify_otp(email="carol@example.com", code=code)

        assert user.role == UserRole.CUSTOMER.value
        assert user.is_active is True
        assert db_session.query(PendingUser).count() == 0
        assert auth_service.authenticate("carol", PASSWORD).id == user.id

    def test_wrong_code(self, db_session, email_sender):
        _register()
        code = email_sender.sent[-1][1]
        wrong = "000000" if code != "000000" else "111111"

        with pytest.raises(AppError) as exc:
            auth_service.verify_otp(email="carol@example.com", code=wrong)
        assert exc.value.error_code == ErrorCode.INVALID_OTP

    def test_expired_code(self, db_session, email_sender):
        pending = _register()
        pending.otp_expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        with pytest.raises(AppError) as exc:
            auth_service.verify_otp(email="carol@example.com", code=pending.otp_code)
        assert exc.value.error_code == ErrorCode.OTP_EXPIRED

        assert auth_service.cleanup_expired_pending_users() == 1

    def test_unknown_pending_email(self, db_session):
        with pytest.raises(AppError) as exc:
            auth_service.verify_otp(email="nobody@example.com", code="123456")
        assert exc.value.error_code == ErrorCode.PENDING_REGISTRATION_NOT_FOUND

    def test_delivery_failure_on_register_keeps_pending_row(self, db_session, email_sender):
        email_sender.fail = True

        pending = _register()

        assert pending.id is not None
        assert email_sender.sent == []

    def test_delivery_failure_on_resend_is_reported(self, db_session, email_sender):
        _register()
        email_sender.fail = True

        with pytest.raises(AppError) as exc:
            auth_service.resend_otp(email="carol@example.com")
        assert exc.value.error_code == ErrorCode.EMAIL_SEND_FAILED

    def test_resend_issues_fresh_code(self, db_session, email_sender):
        _register()
        auth_service.resend_otp(email="carol@example.com")
        assert len(email_sender.sent) == 2

    @pytest.mark.parametrize("password", ["short1", "lettersonly", "12345678"])
    def test_weak_passwords(self, db_session, password):
        with pytest.raises(AppError) as exc:
            _register(password=password)
        assert exc.value.error_code == ErrorCode.WEAK_PASSWORD

    def test_duplicate_identity(self, customer):
        with pytest.raises(AppError) as exc:
            _register(email=customer.email, username="someone")
        assert exc.value.error_code == ErrorCode.EMAIL_ALREADY_EXISTS

        with pytest.raises(AppError) as exc:
            _register(email="fresh@example.com", username=customer.username)
        assert exc.value.error_code == ErrorCode.USERNAME_ALREADY_EXISTS


class TestLoginAndSessions:

    @pytest.mark.parametrize("identifier", ["alice", "alice@example.com", "ALICE@example.com"])
    def test_login_by_username_or_email(self, customer, identifier):
        user, token = auth_service.login(identifier=identifier, password=PASSWORD)

        assert user.id == customer.id
        assert session_service.validate_session(token).id == customer.id

    def test_bad_password(self, customer):
        with pytest.raises(AppError) as exc:
            auth_service.login(identifier="alice", password="Wrong12345")
        assert exc.value.error_code == ErrorCode.INVALID_CREDENTIALS

    def test_inactive_user_cannot_login(self, db_session, customer):
        customer.is_active = False
        db_session.commit()
        assert auth_service.authenticate("alice", PASSWORD) is None

    def test_logout_revokes_token(self, customer):
        _, token = auth_service.login(identifier="alice", password=PASSWORD)

        assert auth_service.logout(token) is True
        assert session_service.validate_session(token) is None
        assert auth_service.logout(token) is False

    def test_revoke_all_sessions(self, customer):
        for _ in range(3):
            session_service.create_session(customer.id)
        assert len(session_service.list_active_sessions(customer.id)) == 3

        assert session_service.revoke_all_user_sessions(customer.id) == 3
        assert session_service.list_active_sessions(customer.id) == []

    def test_unknown_token(self, db_session):
        assert session_service.validate_session("not-a-token") is None

    def test_create_user_rejects_unknown_role(self, db_session):
        with pytest.raises(AppError) as exc:
            auth_service.create_user(username="x", email="x@example.com", password=PASSWORD, role="superuser")
        assert exc.value.error_code == ErrorCode.VALIDATION_ERROR
