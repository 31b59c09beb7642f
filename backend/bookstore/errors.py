# Overview: Error catalogue, domain exception, and the JSON response envelope.

"""
Every API response uses one envelope:

    success: {"success": true,  "code": 1000, "message": ..., "data": ...}
    failure: {"success": false, "code": <int>, "message": ..., "error": {"name": ..., "details": {...}}}

Numeric codes are grouped by concern and never shared between members:
    1xxx auth/users, 2xxx catalog, 3xxx cart, 4xxx orders, 5xxx inventory,
    6xxx vouchers, 7xxx shipping, 8xxx invoices/notifications, 9xxx generic.
"""

from __future__ import annotations

from enum import Enum

from flask import jsonify
from werkzeug.exceptions import HTTPException

from .validation import ValidationError, ConflictError


SUCCESS_CODE = 1000


class ErrorCode(Enum):
    # Auth / users
    USER_NOT_FOUND = (1001, "User not found", 404)
    INVALID_CREDENTIALS = (1002, "Invalid username/email or password", 401)
    UNAUTHENTICATED = (1003, "Authentication required", 401)
    UNAUTHORIZED = (1004, "You do not have permission to perform this action", 403)
    EMAIL_ALREADY_EXISTS = (1005, "Email is already registered", 409)
    USERNAME_ALREADY_EXISTS = (1006, "Username is already taken", 409)
    INVALID_OTP = (1007, "Invalid OTP code", 400)
    OTP_EXPIRED = (1008, "OTP code has expired", 400)
    PENDING_REGISTRATION_NOT_FOUND = (1009, "No pending registration for this email", 404)
    EMAIL_SEND_FAILED = (1010, "Failed to send email", 502)
    WEAK_PASSWORD = (1011, "Password does not meet strength requirements", 400)

    # Catalog
    PRODUCT_NOT_FOUND = (2001, "Product not found", 404)
    SKU_ALREADY_EXISTS = (2002, "SKU already exists", 409)
    PRODUCT_UNAVAILABLE = (2003, "Product is not available for sale", 409)
    CATEGORY_NOT_FOUND = (2004, "Category not found", 404)
    CATEGORY_NAME_EXISTS = (2005, "Category name already exists", 409)
    CATEGORY_SLUG_EXISTS = (2006, "Category slug already exists", 409)
    INVALID_CATEGORY_PARENT = (2007, "A category cannot be moved under itself or one of its descendants", 409)
    CATEGORY_HAS_CHILDREN = (2008, "Category has child categories", 409)
    CATEGORY_HAS_PRODUCTS = (2009, "Category or one of its descendants still has products", 409)
    INVALID_RATING = (2010, "Rating must be between 1 and 5", 400)
    REVIEW_ALREADY_EXISTS = (2011, "You have already reviewed this product", 409)
    REVIEW_NOT_FOUND = (2012, "Review not found", 404)
    COMMENT_NOT_FOUND = (2013, "Comment not found", 404)

    # Cart
    CART_NOT_FOUND = (3001, "Cart not found", 404)
    CART_EMPTY = (3002, "No selected items in cart", 400)
    CART_ITEM_NOT_FOUND = (3003, "Cart item not found", 404)
    PRODUCT_ALREADY_IN_CART = (3004, "Product is already in cart", 409)
    PRODUCT_OUT_OF_STOCK = (3005, "Product is out of stock", 409)

    # Orders
    ORDER_NOT_FOUND = (4001, "Order not found", 404)
    ORDER_ACCESS_DENIED = (4002, "You do not have access to this order", 403)
    INVALID_STATUS_TRANSITION = (4003, "Invalid status transition", 409)
    CANNOT_CANCEL_ORDER = (4004, "Order cannot be cancelled", 409)
    ORDER_ALREADY_CANCELLED = (4005, "Order is already cancelled", 409)
    ORDER_ITEMS_EMPTY = (4006, "Order has no items", 400)
    INVALID_PAYMENT_METHOD = (4007, "Invalid payment method", 400)
    INVALID_FULFILLMENT_METHOD = (4008, "Invalid fulfillment method", 400)
    ORDER_CANNOT_CLOSE = (4009, "Order can only be closed once paid and delivered", 409)
    RECEIVER_INFO_REQUIRED = (4010, "Receiver name, phone and address are required for delivery", 400)

    # Inventory
    INSUFFICIENT_INVENTORY = (5001, "Insufficient inventory", 409)
    DUPLICATE_OUT_TRANSACTION = (5002, "Stock has already been deducted for this order", 409)
    INVALID_TRANSACTION_TYPE = (5003, "Invalid inventory transaction type", 400)
    INVALID_CHANGE_TYPE = (5004, "Invalid change type", 400)
    INVALID_CHANGE_TYPE_FOR_TRANSACTION = (5005, "Change type not allowed for this transaction type", 400)
    INVALID_QUANTITY = (5006, "Quantity must be greater than zero", 400)
    UNIT_PRICE_REQUIRED = (5007, "Unit price is required for stock-in", 400)
    INVENTORY_TRANSACTION_NOT_FOUND = (5008, "Inventory transaction not found", 404)
    INVALID_REFERENCE_TYPE = (5009, "Invalid reference type", 400)

    # Vouchers
    VOUCHER_NOT_FOUND = (6001, "Voucher not found", 404)
    VOUCHER_INACTIVE = (6002, "Voucher is not active", 400)
    VOUCHER_NOT_YET_VALID = (6003, "Voucher is not valid yet", 400)
    VOUCHER_EXPIRED = (6004, "Voucher has expired", 400)
    ORDER_BELOW_MIN_AMOUNT = (6005, "Order total is below the voucher minimum", 400)
    VOUCHER_USAGE_LIMIT_REACHED = (6006, "Voucher usage limit reached", 409)
    VOUCHER_USER_LIMIT_EXCEEDED = (6007, "You have reached the usage limit for this voucher", 409)
    VOUCHER_NOT_APPLICABLE = (6008, "Voucher does not apply to this order", 400)
    VOUCHER_CODE_EXISTS = (6009, "Voucher code already exists", 409)
    INVALID_VOUCHER_DATE_RANGE = (6010, "valid_to must not be before valid_from", 400)
    INVALID_DISCOUNT_PERCENT = (6011, "Percent discount must be between 0 and 100", 400)
    MAX_DISCOUNT_NOT_ALLOWED_FOR_FIXED = (6012, "max_discount is only allowed for PERCENT vouchers", 400)
    VOUCHER_ALREADY_USED_FOR_ORDER = (6013, "Voucher already used for this order", 409)
    INVALID_DISCOUNT_TYPE = (6014, "Invalid discount type", 400)
    INVALID_APPLY_TO = (6015, "Invalid apply_to value", 400)

    # Shipping
    GEOCODING_FAILED = (7001, "Could not locate the delivery address", 502)
    ROUTE_CALCULATION_FAILED = (7002, "Could not calculate the delivery route", 502)

    # Invoices / notifications
    INVOICE_NOT_FOUND = (8001, "Invoice not found", 404)
    NOTIFICATION_NOT_FOUND = (8002, "Notification not found", 404)

    # Generic
    VALIDATION_ERROR = (9001, "Invalid request", 400)
    RESOURCE_CONFLICT = (9002, "Resource conflict", 409)
    RESOURCE_NOT_FOUND = (9003, "Resource not found", 404)
    METHOD_NOT_ALLOWED = (9004, "Method not allowed", 405)
    UNCATEGORIZED = (9999, "Internal server error", 500)

    def __init__(self, code: int, message: str, http_status: int):
        self.code = code
        self.message = message
        self.http_status = http_status


class AppError(Exception):
    """Business-rule failure carrying a stable error code."""

    def __init__(self, error_code: ErrorCode, message: str | None = None, details: dict | None = None):
        super().__init__(message or error_code.message)
        self.error_code = error_code
        self.message = message or error_code.message
        self.details = details or {}

    @property
    def code(self) -> int:
        return self.error_code.code

    @property
    def status_code(self) -> int:
        return self.error_code.http_status

    def to_dict(self) -> dict:
        return error_body(self.error_code, self.message, self.details)

    def __repr__(self) -> str:
        return f"<AppError {self.error_code.name} ({self.code}): {self.message}>"


def error_body(error_code: ErrorCode, message: str | None = None, details: dict | None = None) -> dict:
    return {
        "success": False,
        "code": error_code.code,
        "message": message or error_code.message,
        "error": {
            "name": error_code.name,
            "details": details or {},
        },
    }


def success_response(data=None, message: str = "OK", status: int = 200):
    """Wrap a payload in the success envelope."""
    return jsonify({
        "success": True,
        "code": SUCCESS_CODE,
        "message": message,
        "data": data,
    }), status


def register_error_handlers(app) -> None:
    """Map every exception that escapes a view onto the failure envelope."""

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.status_code >= 500:
            app.logger.error(f"AppError [{error.code}] {error.error_code.name}: {error.message}")
        else:
            app.logger.info(f"AppError [{error.code}] {error.error_code.name}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        return jsonify(error_body(ErrorCode.VALIDATION_ERROR, str(error))), 400

    @app.errorhandler(ConflictError)
    def handle_conflict_error(error: ConflictError):
        return jsonify(error_body(ErrorCode.RESOURCE_CONFLICT, str(error))), 409

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        if error.code == 404:
            error_code = ErrorCode.RESOURCE_NOT_FOUND
        elif error.code == 405:
            error_code = ErrorCode.METHOD_NOT_ALLOWED
        elif error.code is not None and error.code < 500:
            error_code = ErrorCode.VALIDATION_ERROR
        else:
            error_code = ErrorCode.UNCATEGORIZED
        return jsonify(error_body(error_code, error.description)), error.code or 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        app.logger.exception("Unhandled exception")
        return jsonify(error_body(ErrorCode.UNCATEGORIZED)), 500
