"""
Error Handlers
"""
import logging

from flask import Blueprint, jsonify, request
from pydantic import ValidationError as SchemaError
from werkzeug.exceptions import HTTPException

from app import db
from exceptions import ModerationError

errors_bp = Blueprint('errors', __name__)


def _error_body(code, message, details=None):
    return {'error': {'code': code, 'message': message, 'details': details or {}}}


@errors_bp.app_errorhandler(ModerationError)
def moderation_error(error):
    """Handle domain errors raised by the services"""
    db.session.rollback()
    if int(error.status_code) >= 500:
        logging.error(f"{request.method} {request.path} failed: {error}")
    return jsonify(error.to_dict()), int(error.status_code)


@errors_bp.app_errorhandler(SchemaError)
def schema_error(error):
    """Handle request bodies that fail validation"""
    field_errors = {}
    for err in error.errors():
        location = '.'.join(str(part) for part in err['loc']) or 'body'
        field_errors.setdefault(location, []).append(err['msg'])
    return jsonify(_error_body('VALIDATION_ERROR', 'invalid request', {'field_errors': field_errors})), 400


@errors_bp.app_errorhandler(HTTPException)
def http_error(error):
    """Handle 404, 405 and friends as JSON"""
    code = (error.name or 'error').upper().replace(' ', '_')
    return jsonify(_error_body(code, error.description or error.name)), error.code


@errors_bp.app_errorhandler(Exception)
def internal_error(error):
    """Handle anything unexpected without leaking internals"""
    db.session.rollback()
    logging.exception(f"Unhandled error on {request.method} {request.path}: {type(error).__name__}")
    return jsonify(_error_body('INTERNAL_ERROR', 'internal server error')), 500
