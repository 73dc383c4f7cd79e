# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes.

Tokens are opaque bearer strings; only their SHA-256 hash is stored.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/signup")
def signup_route():
    """
    Create an account and log it in.

    Body: email, password, first_name (optional), last_name (optional)
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not all([email, password]):
        return jsonify({"success": False, "error": "email and password required", "details": {}}), 400

    user = auth_service.register_user(
        email=email,
        password=password,
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
    )

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    current_app.logger.info("User registered: %s", user.email)

    return jsonify({
        "success": True,
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "message": "Signup successful",
    }), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not all([email, password]):
        return jsonify({"success": False, "error": "email and password required", "details": {}}), 400

    user = auth_service.authenticate(email, password)
    if not user:
        current_app.logger.info("Failed login for %s from %s", email, request.remote_addr)
        return jsonify({"success": False, "error": "Invalid credentials", "details": {}}), 401

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )

    return jsonify({
        "success": True,
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the session token used for this request."""
    token = request.headers.get("Authorization").split(" ", 1)[1]
    session_service.revoke_session(token, reason="User logout")
    return jsonify({"success": True, "message": "Logged out"}), 200


@auth_bp.post("/logout-all")
@require_auth
def logout_all_route():
    """Revoke every active session of the current user."""
    count = session_service.revoke_all_user_sessions(g.current_user.id, reason="User logout all")
    return jsonify({"success": True, "revoked_count": count}), 200


@auth_bp.get("/profile")
@require_auth
def get_profile_route():
    return jsonify({"success": True, "user": g.current_user.to_dict()}), 200


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    data = request.get_json(silent=True) or {}
    user = auth_service.update_profile(g.current_user, data)
    return jsonify({"success": True, "user": user.to_dict()}), 200
