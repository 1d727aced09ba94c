"""Error kinds raised by the stock core and the JSON envelopes they render as."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import settings

logger = logging.getLogger(__name__)


class StoreError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class NotFoundError(StoreError):
    status_code = status.HTTP_404_NOT_FOUND


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: UUID):
        super().__init__("Product not found")
        self.product_id = product_id


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: UUID):
        super().__init__("Order not found")
        self.order_id = order_id


class CategoryNotFoundError(NotFoundError):
    def __init__(self, category_id: UUID):
        super().__init__("Category not found")
        self.category_id = category_id


class AdminNotFoundError(NotFoundError):
    def __init__(self, admin_id: UUID):
        super().__init__("Admin not found")
        self.admin_id = admin_id


class StockValidationError(StoreError):
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientStockError(StoreError):
    """The change would take a product's stock below zero."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, product_id: UUID, requested: int, available: int, message: Optional[str] = None):
        super().__init__(
            message
            or f"Insufficient stock for product {product_id}. Available: {available}, requested: {requested}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class StockConflictError(StoreError):
    """Stock changed between the read and the conditional write."""

    status_code = status.HTTP_409_CONFLICT


class PersistenceError(StoreError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(message: str, error: Optional[str] = None) -> dict:
    body = {"success": False, "message": message}
    if error and not settings.is_production:
        body["error"] = error
    return body


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    underlying = repr(exc.cause) if exc.cause is not None else exc.message
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, underlying))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "errors": jsonable_encoder(exc.errors())},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Something went wrong!", str(exc)),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
