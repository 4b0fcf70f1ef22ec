"""
pharmacy/errors.py
──────────────────
Domain exceptions and the JSON error handlers that turn them into responses.

Every failure a caller can act on maps to one class here:

    ValidationError      400  bad or missing input (per-field details)
    AuthenticationError  401  no session / unknown acting user
    AuthorizationError   403  role lacks permission
    NotFoundError        404  referenced record does not exist
    ConflictError        409  insufficient stock, duplicate keys

Anything else is logged with a traceback and answered with a generic 500,
so database errors and stack traces never reach the client.
"""
from flask import jsonify
from werkzeug.exceptions import HTTPException


class PharmacyError(Exception):
    """Base class for errors that carry their own HTTP status."""
    status_code = 400

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(PharmacyError):
    status_code = 400


class AuthenticationError(PharmacyError):
    status_code = 401


class AuthorizationError(PharmacyError):
    status_code = 403


class NotFoundError(PharmacyError):
    status_code = 404


class ConflictError(PharmacyError):
    status_code = 409


def raise_if_errors(errors: dict, message: str = 'Validation failed.') -> None:
    """Raise ValidationError when a validator returned any field errors."""
    if errors:
        raise ValidationError(message, details=errors)


def register_error_handlers(app):
    """Attach JSON handlers for domain errors, HTTP errors and crashes."""

    @app.errorhandler(PharmacyError)
    def handle_pharmacy_error(exc):
        if exc.status_code >= 401:
            app.logger.warning(f"{type(exc).__name__}: {exc.message}")
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({'error': exc.description or exc.name}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        app.logger.error(
            f"Unhandled error: {type(exc).__name__}: {exc}", exc_info=True
        )
        from pharmacy import db
        db.session.rollback()
        return jsonify({'error': 'An internal error occurred. Please try again later.'}), 500
