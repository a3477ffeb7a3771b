from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    AuthenticationFailed,
    MethodNotAllowed,
    NotAuthenticated,
    NotFound,
    NotAcceptable,
    ParseError,
    PermissionDenied,
    Throttled,
    UnsupportedMediaType,
    ValidationError,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR_MESSAGE = "An unexpected error occurred."

EXCEPTION_CODE_MAP: dict[type[Exception], str] = {
    ValidationError: "validation_error",
    NotAuthenticated: "not_authenticated",
    AuthenticationFailed: "authentication_failed",
    PermissionDenied: "permission_denied",
    NotFound: "not_found",
    MethodNotAllowed: "method_not_allowed",
    NotAcceptable: "not_acceptable",
    UnsupportedMediaType: "unsupported_media_type",
    ParseError: "parse_error",
    Throttled: "throttled",
}


class InventoryError(Exception):
    """Base class for ledger and settlement failures raised by the services.

    Every error carries a stable ``code`` (the error kind), the HTTP status the
    API answers with, and a ``details`` dict that is rendered as ``errors``.
    """

    code = "inventory_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Inventory operation failed."

    def __init__(self, message: str | None = None, details: dict | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(InventoryError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Record not found."


class InvalidStateError(InventoryError):
    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Operation not allowed in the current state."


class InsufficientStock(InventoryError):
    code = "insufficient_stock"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Insufficient stock."


class DuplicateError(InventoryError):
    code = "duplicate"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Record already exists."


class InconsistentError(InventoryError):
    code = "inconsistent"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Request is inconsistent."


class ProductNotFound(NotFoundError):
    default_message = "Product not found."


class UnitNotFound(NotFoundError):
    default_message = "Serialized unit not found."


class SaleNotFound(NotFoundError):
    default_message = "Sale not found."


class CustomerNotFound(NotFoundError):
    default_message = "Customer not found."


class AlertNotFound(NotFoundError):
    default_message = "Stock alert not found."


class ConsigneeNotFound(NotFoundError):
    default_message = "Consignee not found."


class ConsignmentNotFound(NotFoundError):
    default_message = "Consignment not found."


class ConsignmentLineNotFound(NotFoundError):
    default_message = "Consignment line not found."


class InvalidUnitTransition(InvalidStateError):
    default_message = "Serialized unit cannot move to the requested state."


class UnitNotAvailable(InvalidStateError):
    default_message = "Serialized unit is not available."


class ProductNotSerialized(InvalidStateError):
    default_message = "Product does not track serialized units."


class SerializedStockChange(InvalidStateError):
    default_message = "Serialized products change stock only through their units."


class LineNotPending(InvalidStateError):
    default_message = "Consignment line was already settled."


class AlertAlreadyResolved(InvalidStateError):
    default_message = "Stock alert is already resolved."


class SaleNotCancellable(InvalidStateError):
    default_message = "Only confirmed sales can be cancelled."


class SaleNotVoidable(InvalidStateError):
    default_message = "Sale cannot be voided."


class SaleNotPayable(InvalidStateError):
    default_message = "Only confirmed sales with an open balance take payments."


class ConsigneeInactive(InvalidStateError):
    default_message = "Consignee is inactive."


class DuplicateSerial(DuplicateError):
    default_message = "Serial number already registered."


class TotalsMismatch(InconsistentError):
    default_message = "Sale totals do not match its lines."


class PaymentMismatch(InconsistentError):
    default_message = "Payments do not add up to the sale total."


class MissingExchangeRate(InconsistentError):
    default_message = "No exchange rate available for payment currency."


class InvalidSaleLine(InconsistentError):
    default_message = "Sale line is invalid."


class InvalidMovement(InconsistentError):
    default_message = "Stock movement quantity does not match its type."


class InvalidThresholds(InconsistentError):
    default_message = "Minimum stock must not exceed warning stock."


class MixedConsignmentLines(InconsistentError):
    default_message = "Lines belong to different consignments."


class ConsignmentMismatch(InconsistentError):
    default_message = "Consignment does not belong to this consignee."


class InvalidPaymentAmount(InconsistentError):
    default_message = "Payment amount must be greater than zero."


def build_error_envelope(
    *,
    code: str,
    message: str,
    errors: Any,
    status_code: int,
) -> dict[str, Any]:
    return {
        "code": code,
        "message": message,
        "errors": errors,
        "status": status_code,
    }


def error_response(
    *,
    code: str,
    message: str,
    errors: Any = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> Response:
    return Response(
        build_error_envelope(
            code=code,
            message=message,
            errors=errors,
            status_code=status_code,
        ),
        status=status_code,
    )


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    if isinstance(exc, InventoryError):
        logger.info("Rejected inventory operation: %s", exc.message, extra={"status_code": exc.status_code})
        return error_response(
            code=exc.code,
            message=exc.message,
            errors=exc.details or None,
            status_code=exc.status_code,
        )

    response = drf_exception_handler(exc, context)

    if response is None:
        view_name = context.get("view").__class__.__name__ if context.get("view") else "unknown"
        logger.exception("Unhandled API exception in %s", view_name)
        return error_response(
            code="internal_server_error",
            message=GENERIC_SERVER_ERROR_MESSAGE,
            errors=None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    status_code = response.status_code
    errors = _normalize_errors(response.data)
    message = _build_message(exc, response.data)
    code = _build_code(exc)

    response.data = build_error_envelope(
        code=code,
        message=message,
        errors=errors,
        status_code=status_code,
    )
    return response


def _build_code(exc: Exception) -> str:
    for exception_type, stable_code in EXCEPTION_CODE_MAP.items():
        if isinstance(exc, exception_type):
            return stable_code

    if isinstance(exc, APIException):
        return str(getattr(exc, "default_code", "api_error"))

    return "internal_server_error"


def _build_message(exc: Exception, data: Any) -> str:
    if isinstance(exc, ValidationError):
        return "Validation failed."

    detail = None
    if isinstance(data, Mapping):
        detail = data.get("detail")
    elif isinstance(data, str):
        detail = data

    if detail:
        return str(detail)

    if isinstance(exc, Throttled):
        return "Request was throttled."

    if isinstance(exc, APIException):
        return str(getattr(exc, "detail", "Request failed."))

    return GENERIC_SERVER_ERROR_MESSAGE


def _normalize_errors(data: Any) -> Any:
    if isinstance(data, Mapping):
        if set(data.keys()) == {"detail"}:
            return None
        return data

    if isinstance(data, Sequence) and not isinstance(data, str):
        return data

    return None
