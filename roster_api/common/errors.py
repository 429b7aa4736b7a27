# roster_api/common/errors.py
from flask import current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError

from roster_api.common.http import fail


class APIError(Exception):
    """Raised from handlers; rendered as the standard failure envelope."""
    def __init__(self, code, message, status_code=400, payload=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.payload = payload


class ValidationFailed(APIError):
    """422 with per-field messages: {"field": "message", ...}."""
    def __init__(self, errors: dict, message="Validation failed"):
        super().__init__("VALIDATION_ERROR", message, status_code=422)
        self.errors = errors


def register_error_handlers(app):
    @app.errorhandler(ValidationFailed)
    def _validation(e: ValidationFailed):
        return fail(message=e.message, status=e.status_code, code=e.code, errors=e.errors)

    @app.errorhandler(APIError)
    def _api_error(e: APIError):
        return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(message=e.description or e.name, status=e.code or 500)

    @app.errorhandler(IntegrityError)
    def _integrity(e: IntegrityError):
        # 409 for unique/FK violations
        from roster_api.extensions import db
        db.session.rollback()
        return fail(message="Conflict / integrity error", status=409, code="CONSTRAINT_ERROR",
                    detail=str(e.orig) if getattr(e, "orig", None) else str(e))

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        current_app.logger.exception(e)
        return fail(message="Internal Server Error", status=500)
