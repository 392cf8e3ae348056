from flask import jsonify
from pymongo.errors import PyMongoError
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """Base class for failures that map onto a JSON error response."""

    status_code = 500
    default_message = "Something went wrong."

    def __init__(self, message=None, status_code=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ApiError):
    status_code = 400
    default_message = "The request payload is invalid."


class Unauthenticated(ApiError):
    status_code = 401
    default_message = "Authentication credentials were not provided."


class Forbidden(ApiError):
    status_code = 403
    default_message = "You need additional permissions to perform this action."


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found."


class Conflict(ApiError):
    status_code = 409
    default_message = "The request conflicts with the current state."


class DependencyFailure(ApiError):
    status_code = 500
    default_message = "Something went wrong."


class GatewayTimeout(ApiError):
    status_code = 504
    default_message = "An upstream service did not respond in time."


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error: ApiError):
        if error.status_code >= 500:
            app.logger.error("%s: %s", type(error).__name__, error.message)
        return jsonify({"message": error.message}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return jsonify({"message": error.description}), error.code

    @app.errorhandler(PyMongoError)
    def handle_database_error(error: PyMongoError):
        app.logger.error("Database operation failed: %s", error)
        return jsonify({"message": DependencyFailure.default_message}), 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        app.logger.exception("Unhandled error: %s", error)
        return jsonify({"message": "Something went wrong."}), 500
