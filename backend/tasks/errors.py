"""Error taxonomy for the task API and the DRF handler that renders it.

Every error leaves the service as JSON of the form ``{"error": "<message>"}``:
  - ValidationError -> 400 (bad or missing input)
  - NotFoundError   -> 404 (unknown task id)
  - StoreError      -> 500 (document store unreachable or driver failure)
Anything else that escapes a view is logged and reported as a 500.
"""

import logging

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class TaskError(exceptions.APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Task operation failed"
    default_code = "error"


class ValidationError(TaskError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"
    default_code = "invalid"


class NotFoundError(TaskError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Task not found"
    default_code = "not_found"


class StoreError(TaskError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Task store unavailable"
    default_code = "store_error"


def _first_message(detail) -> str:
    """Flatten DRF's nested error detail into one readable line."""
    if isinstance(detail, dict):
        for field, value in detail.items():
            msg = _first_message(value)
            if field in ("detail", "non_field_errors"):
                return msg
            return f"{field}: {msg}"
        return "Invalid input"
    if isinstance(detail, (list, tuple)):
        return _first_message(detail[0]) if detail else "Invalid input"
    return str(detail)


def exception_handler(exc, context):
    response = drf_exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception("Unhandled error in %s", type(view).__name__ if view else "view")
        return Response({"error": "Internal server error"},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(exc, StoreError):
        logger.error("Store failure: %s", exc.detail)

    body = {"error": _first_message(response.data)}
    if isinstance(exc, exceptions.ValidationError) and isinstance(response.data, dict):
        body["details"] = response.data
    response.data = body
    return response
