# crvote/authentication/rbac.py

from enum import Enum
from functools import wraps
from flask import current_app, jsonify
from flask_jwt_extended import get_jwt

from crvote import app, audit_logger

# Roles and the admin-only guard.
#
# NOTE: roles come from the e-mail domain alone (see role_from_email). That
# is a placeholder policy for a test deployment: anyone with a mailbox on
# the admin domain becomes an admin. Do not read more into it than two
# hard-coded suffixes.


class UserRole(Enum):
    STUDENT = "student"
    ADMIN = "admin"
    CR = "CR"


class DomainNotAllowed(Exception):
    def __init__(self, email):
        super().__init__(f"domain not allowed: {email}")
        self.email = email


def role_from_email(email, student_domain=None, admin_domain=None):
    """Map an e-mail address to a role, or raise DomainNotAllowed."""
    student_domain = student_domain or app.config['STUDENT_EMAIL_DOMAIN']
    admin_domain = admin_domain or app.config['ADMIN_EMAIL_DOMAIN']
    address = (email or '').strip().lower()
    if address.endswith('@' + student_domain.lower()):
        return UserRole.STUDENT
    if address.endswith('@' + admin_domain.lower()):
        return UserRole.ADMIN
    raise DomainNotAllowed(email)


def require_role(role):
    """Allow the view only when the verified token carries `role`.

    Must sit below @jwt_required() so the claims are already verified.
    """
    role_value = role.value if isinstance(role, Enum) else str(role)

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            claims = get_jwt()
            if claims.get('role') != role_value:
                identity = claims.get('email') or 'unknown user'
                current_app.logger.warning(f"Unauthorized access to {func.__name__} by {identity}")
                audit_logger.log_access_denied(func.__name__, identity, f"requires role {role_value}")
                return jsonify({'message': f'{role_value.capitalize()} access required'}), 403
            return func(*args, **kwargs)
        return wrapper
    return decorator
