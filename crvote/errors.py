# crvote/errors.py

# Error taxonomy shared by the services and the HTTP layer. Services raise
# ApiError subclasses; routes wrapped in @operation() turn them into
# {"message": ...} bodies, and anything unexpected into a logged 500.

from functools import wraps
from flask import jsonify, request
from werkzeug.exceptions import HTTPException
from flask_limiter.errors import RateLimitExceeded
from crvote import app, db, audit_logger


class ApiError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_response(self):
        return jsonify({'message': self.message}), self.status_code


class ValidationError(ApiError):
    status_code = 400


class Unauthenticated(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


def server_error(operation_name, error, **context):
    """Roll back, record the failure with enough context to debug, answer 500."""
    db.session.rollback()
    context.update(request.view_args or {})
    app.logger.exception("%s failed (%s): %s", operation_name, context, error)
    audit_logger.log_security_event(f'{operation_name}_error', {'error': str(error), **context})
    return jsonify({'message': 'Internal server error'}), 500


def operation(operation_name):
    """Decorator converting service errors into JSON responses for one route."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except ApiError as e:
                db.session.rollback()
                return e.to_response()
            except Exception as e:
                return server_error(operation_name, e)
        return wrapper
    return decorator


@app.errorhandler(ApiError)
def handle_api_error(error):
    return error.to_response()


@app.errorhandler(RateLimitExceeded)
def handle_rate_limit(error):
    return jsonify({'message': f'Too many requests: {error.description}'}), 429


@app.errorhandler(HTTPException)
def handle_http_exception(error):
    return jsonify({'message': error.description}), error.code
