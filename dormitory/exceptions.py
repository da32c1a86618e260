# dormitory/exceptions.py
import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

__all__ = [
    "DormitoryError", "NotFound", "InvalidState", "Conflict", "ValidationError",
    "dormitory_exception_handler",
]


class DormitoryError(APIException):
    """Base for business-rule failures raised by the services.

    ``code`` names the specific reason (``room_full``, ``student``...) so the
    web UI can branch on it without parsing the message.
    """
    kind = "DormitoryError"

    def __init__(self, detail=None, code=None):
        super().__init__(detail=detail, code=code)
        self.code = code or self.default_code


class NotFound(DormitoryError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found."
    default_code = "not_found"
    kind = "NotFound"


class InvalidState(DormitoryError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The resource is not in a state that allows this operation."
    default_code = "invalid_state"
    kind = "InvalidState"


class Conflict(DormitoryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The operation would violate a dormitory rule."
    default_code = "conflict"
    kind = "Conflict"


def _first_message(data):
    if isinstance(data, dict):
        if "detail" in data:
            return str(data["detail"])
        for value in data.values():
            return _first_message(value)
    if isinstance(data, list) and data:
        return _first_message(data[0])
    return str(data)


def dormitory_exception_handler(exc, context):
    """Renders every API failure as ``{"success": false, "message": ...}``."""
    if isinstance(exc, DatabaseError):
        view = context.get("view")
        logger.exception("Database failure in %s", view.__class__.__name__ if view else "request")
        return Response(
            {"success": False, "error": "InternalError", "message": "Internal server error."},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    response = exception_handler(exc, context)
    if response is None:
        return None

    payload = {"success": False, "message": _first_message(response.data)}
    if isinstance(exc, DormitoryError):
        payload["error"] = exc.kind
        payload["code"] = exc.code
    elif isinstance(exc, ValidationError):
        payload["error"] = "ValidationError"
        payload["errors"] = response.data
    response.data = payload
    return response
