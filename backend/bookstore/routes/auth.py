# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Two-step registration: register -> verify-otp (resend-otp on demand)
- Login returns an opaque bearer token for the Authorization header
- Logout revokes the presented token
"""

from flask import Blueprint, request, g, current_app

from ..decorators import require_auth
from ..errors import success_response
from ..services import auth_service, membership_service, session_service
from ..validation import ValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    email = data.get("email")
    password = data.get("password")

    if not all([username, email, password]):
        raise ValidationError("username, email and password are required")

    pending = auth_service.register(
        username=username,
        email=email,
        password=password,
        phone=data.get("phone"),
    )
    return success_response(pending.to_dict(), message="OTP sent; verify to complete registration", status=201)


@auth_bp.post("/verify-otp")
def verify_otp_route():
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("otp"):
        raise ValidationError("email and otp are required")

    user = auth_service.verify_otp(email=data["email"], code=data["otp"])
    return success_response(user.to_dict(), message="Registration complete", status=201)


@auth_bp.post("/resend-otp")
def resend_otp_route():
    data = request.get_json(silent=True) or {}
    if not data.get("email"):
        raise ValidationError("email is required")

    pending = auth_service.resend_otp(email=data["email"])
    return success_response(pending.to_dict(), message="OTP sent")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    Accepts username or email in "username", "email" or "identifier".
    """
    data = request.get_json(silent=True) or {}
    identifier = data.get("username") or data.get("email") or data.get("identifier")
    password = data.get("password")

    if not all([identifier, password]):
        raise ValidationError("username/email and password required")

    user, token = auth_service.login(
        identifier=identifier,
        password=password,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    current_app.logger.info(f"User {user.id} logged in")
    return success_response({"user": user.to_dict(), "token": token})


@auth_bp.post("/logout")
@require_auth
def logout_route():
    auth_service.logout(g.session_token)
    return success_response(message="Logged out")


@auth_bp.get("/me")
@require_auth
def me_route():
    return success_response(g.current_user.to_dict())


@auth_bp.get("/membership")
@require_auth
def membership_route():
    return success_response(membership_service.progress(g.current_user))


@auth_bp.get("/sessions")
@require_auth
def list_sessions_route():
    sessions = session_service.list_active_sessions(g.current_user.id)
    return success_response([s.to_dict() for s in sessions])
