"""
Application exceptions and the error envelope handler

Every subclass carries its HTTP status and a default machine-readable
code; raise sites override the message and, where useful, the code.
"""

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class VendoraException(HTTPException):
    """Base exception rendered as {"error": {"code", "message"}}"""

    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "INTERNAL_ERROR"
    default_detail = "Internal server error"

    def __init__(
        self,
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status_code=self.http_status,
            detail=detail or self.default_detail,
            headers=headers,
        )
        self.error_code = error_code or self.default_code


class BadRequestException(VendoraException):
    http_status = status.HTTP_400_BAD_REQUEST
    default_code = "BAD_REQUEST"
    default_detail = "Bad request"


class NotFoundException(VendoraException):
    http_status = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"
    default_detail = "Not found"


class ConflictException(VendoraException):
    http_status = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"
    default_detail = "Conflict"


class InternalServerException(VendoraException):
    pass


class ServiceUnavailableException(VendoraException):
    """A dependency or a racing writer isn't ready; the caller should retry"""
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "SERVICE_UNAVAILABLE"
    default_detail = "Service temporarily unavailable"


class InvalidWebhookSignatureException(BadRequestException):
    """Webhook delivery could not be authenticated or parsed"""
    default_code = "INVALID_SIGNATURE"
    default_detail = "Invalid webhook signature"


class PaymentGatewayException(VendoraException):
    """Stripe API call failed"""
    http_status = status.HTTP_502_BAD_GATEWAY
    default_code = "PAYMENT_GATEWAY_ERROR"
    default_detail = "Payment provider error"


class OrderNotCancellableException(BadRequestException):
    default_code = "ORDER_NOT_CANCELLABLE"
    default_detail = "Order cannot be cancelled in its current status"


class NoCancellationRequestException(ConflictException):
    default_code = "NO_CANCELLATION_REQUEST"
    default_detail = "There is no pending cancellation request for this order"


class DuplicateResourceException(ConflictException):
    default_code = "DUPLICATE_RESOURCE"

    def __init__(self, resource: str, field: str, value: str):
        super().__init__(f"{resource} with {field} '{value}' already exists")


async def vendora_exception_handler(request: Request, exc: VendoraException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_code}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.error_code, "message": exc.detail}},
        headers=exc.headers,
    )
