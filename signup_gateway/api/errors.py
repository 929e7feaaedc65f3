"""Error handlers for the application."""
from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from signup_gateway.core.coreapi import CoreAPIClientError
from signup_gateway.core.errors import GatewayError


def _envelope(status, message, result=None):
    return jsonify({
        "success": False,
        "status": status,
        "message": message,
        "result": result or {},
    }), status


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(GatewayError)
    def handle_gateway_error(error):
        """Render gateway errors as front-end envelopes."""
        if error.status >= 500:
            app.logger.warning(f"{type(error).__name__}: {error.message}")
        return jsonify(error.to_envelope()), error.status

    @app.errorhandler(CoreAPIClientError)
    def handle_coreapi_error(error):
        """CoreAPI failures that escaped a route."""
        app.logger.error(f"CoreAPI failure: {error}", exc_info=True)
        if _wants_json():
            return _envelope(500, "Upstream service error")
        return ("Upstream service error", 500, {"Content-Type": "text/plain"})

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        if isinstance(error, HTTPException):
            if _wants_json():
                return _envelope(error.code or 500, error.description or error.name)
            return error

        # ALWAYS log the full error (even in production) - logs are secure
        app.logger.error(f"Unhandled exception: {error}", exc_info=True)

        if _wants_json():
            return _envelope(500, "An unexpected error occurred")
        return ("Internal Server Error", 500, {"Content-Type": "text/plain"})


def _wants_json():
    """Check if the client wants a JSON response."""
    # The control panel API always speaks JSON
    if request.path.startswith("/api/"):
        return True

    return request.accept_mimetypes.accept_json and \
        not request.accept_mimetypes.accept_html
