from flask import jsonify
from werkzeug.exceptions import HTTPException


class ValidationError(ValueError):
    """Raised by domain helpers when request data is unacceptable."""


def register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({"error": e.name, "details": e.description}), e.code
