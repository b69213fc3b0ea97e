# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/printshop/routes/auth.py
"""
Authentication API routes

Customers self-register with email and password; admins are created from
the CLI (flask users create --role admin). Every login issues a bearer
token stored hashed in session_tokens.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, session_service
from ..validation import ConflictError, ValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_response(user, status_code: int, message: str):
    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "message": message,
    }), status_code


@auth_bp.post("/register")
def register_route():
    """
    Create a customer account and sign it in.

    Request body:
    {
        "email": "budi@example.com",
        "name": "Budi",
        "password": "secret123",
        "phoneNumber": "+6281234567890"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_user(
            email=data.get("email"),
            name=data.get("name"),
            password=data.get("password") or "",
            phone_number=data.get("phoneNumber"),
        )
        current_app.logger.info("Registered user %s", user.id)
        return _session_response(user, 201, "Registration successful")

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")
        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        return _session_response(user, 200, "Login successful")

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    try:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authorization header required"}), 401

        token = auth_header.split(" ", 1)[1]
        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
