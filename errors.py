# errors.py — HTTP error taxonomy for the final-exam routes (JSON bodies)

import traceback

from flask import jsonify
from werkzeug.exceptions import (
    BadRequest, Forbidden, HTTPException, InternalServerError, NotFound,
    Unauthorized, UnprocessableEntity,
)

__all__ = [
    "BadData", "BadRequest", "Forbidden", "InternalServerError", "NotFound",
    "Unauthorized", "error_body", "register_error_handlers",
]


class BadData(UnprocessableEntity):
    """Generated content that failed validation (unparseable or underfilled)."""


def error_body(exc: HTTPException) -> dict:
    return {
        "ok": False,
        "statusCode": exc.code,
        "error": exc.name,
        "message": exc.description,
    }


def register_error_handlers(app):
    """Every HTTPException (and any stray exception) leaves as a JSON error."""

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        resp = jsonify(error_body(exc))
        resp.status_code = exc.code or 500
        return resp

    @app.errorhandler(Exception)
    def _unexpected_error(exc: Exception):
        print(f"[error] unhandled {type(exc).__name__}: {exc}", flush=True)
        traceback.print_exc()
        internal = InternalServerError("An unexpected error occurred")
        resp = jsonify(error_body(internal))
        resp.status_code = 500
        return resp
