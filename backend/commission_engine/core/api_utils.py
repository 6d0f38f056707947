"""
Common API utilities for consistent response formatting across controllers.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from flask import jsonify

from commission_engine.core.exceptions import (
    CommissionError,
    DomainRuleViolation,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def api_response(
    success: bool, message: str, data: Optional[Any] = None, status_code: int = 200
) -> tuple:
    """
    Standardized API response format for all endpoints.

    Args:
        success: Whether the operation was successful
        message: Human-readable message about the operation
        data: Optional data payload
        status_code: HTTP status code

    Returns:
        Tuple of (json_response, status_code)
    """
    response = {"success": success, "message": message}

    if data is not None:
        response["data"] = data

    return jsonify(response), status_code


def error_response(error: CommissionError) -> tuple:
    """Map an engine error to the standard envelope and HTTP status."""
    if isinstance(error, ValidationError):
        return api_response(
            False, error.message, {"code": error.code, "errors": error.errors}, 400
        )
    if isinstance(error, NotFoundError):
        return api_response(False, error.message, {"code": error.code}, 404)
    if isinstance(error, DomainRuleViolation):
        return api_response(False, error.message, {"code": error.code}, 409)

    logger.error(
        "Unhandled commission error",
        extra={"context": {"code": error.code, "error": error.message, **error.context}},
    )
    return api_response(False, "Erro interno do servidor", {"code": error.code}, 500)


def to_json_value(value: Any) -> Any:
    """Convert Decimal/date values to JSON friendly primitives."""
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
