# crvote/security/token_manager.py
from flask import jsonify, current_app
from flask_jwt_extended import create_access_token, decode_token, get_jwt

from crvote import jwt

# Bearer tokens carry {id, email, role}. They are issued once after Google
# sign-in with a fixed validity (JWT_ACCESS_TOKEN_EXPIRES, 7 days) and are
# never refreshed or revoked early.

CLAIM_NAMES = ('id', 'email', 'role')


class TokenManager:
    def issue_token(self, user, expires_delta=None) -> str:
        claims = {'id': user.id, 'email': user.email, 'role': user.role}
        kwargs = {'additional_claims': claims}
        if expires_delta is not None:
            kwargs['expires_delta'] = expires_delta
        return create_access_token(identity=str(user.id), **kwargs)

    def validate_token(self, token: str):
        """Return the {id, email, role} claims if the token is valid, else None."""
        try:
            decoded = decode_token(token, allow_expired=False)
        except Exception as e:
            current_app.logger.warning(f"Token validation failed: {str(e)}")
            return None
        return {name: decoded.get(name) for name in CLAIM_NAMES}

    def current_claims(self):
        """Claims of the token on the current request (inside @jwt_required)."""
        claims = get_jwt()
        return {name: claims.get(name) for name in CLAIM_NAMES}


@jwt.unauthorized_loader
def missing_token_callback(reason):
    return jsonify({"message": "No token provided"}), 401


@jwt.invalid_token_loader
def invalid_token_callback(reason):
    current_app.logger.warning(f"JWT verification failed: {reason}")
    return jsonify({"message": "Invalid or expired token"}), 401


@jwt.expired_token_loader
def expired_token_callback(jwt_header, jwt_payload):
    current_app.logger.info(f"Expired token presented for user {jwt_payload.get('email')}")
    return jsonify({"message": "Invalid or expired token"}), 401
