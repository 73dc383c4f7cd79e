# Overview: Request decorators for API routes.

import hmac
from functools import wraps
from flask import current_app, request, jsonify, g

from .services import session_service


def _error(message: str, status: int):
    return jsonify({"success": False, "error": message, "details": {}}), status


def require_auth(f):
    """
    Require a valid session token and establish owner context.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.owner_id: Owner scope for every product and invoice operation
    - g.session_context: The full SessionContext object

    Returns 401 if the Authorization header is missing, the token is invalid
    or expired, or the account is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return _error("Authentication required", 401)

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)
        if not context:
            return _error("Invalid or expired token", 401)

        g.current_user = context.user
        g.owner_id = context.owner_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_cron_secret(f):
    """
    Guard scheduler endpoints with the shared CRON_SECRET.

    Accepts "Authorization: Bearer <secret>" or "X-Cron-Secret: <secret>".
    Refuses everything while CRON_SECRET is unset.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("CRON_SECRET")
        if not expected:
            return _error("Cron endpoints are disabled", 403)

        supplied = request.headers.get("X-Cron-Secret", "")
        auth_header = request.headers.get("Authorization", "")
        if not supplied and auth_header.startswith("Bearer "):
            supplied = auth_header.split(" ", 1)[1]

        if not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
            current_app.logger.warning("Rejected cron call to %s from %s", request.path, request.remote_addr)
            return _error("Forbidden", 403)

        return f(*args, **kwargs)

    return decorated_function
