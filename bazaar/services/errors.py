# bazaar/services/errors.py
"""
Outcome values returned by the cart, coupon and checkout services.

Precondition and conflict failures travel as data (``Result.error``) so
the caller decides how to answer; only storage faults are raised.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_PRICE = "invalid_price"
    INVALID_DISCOUNT = "invalid_discount"
    PRODUCT_NOT_FOUND = "product_not_found"
    LINE_NOT_FOUND = "line_not_found"
    COUPON_NOT_FOUND = "coupon_not_found"
    COUPON_INACTIVE = "coupon_inactive"
    COUPON_EXPIRED = "coupon_expired"
    COUPON_LIMIT_REACHED = "coupon_limit_reached"
    BELOW_MINIMUM_ORDER = "below_minimum_order"
    SCOPE_MISMATCH = "scope_mismatch"
    EMPTY_CART = "empty_cart"
    INVALID_ADDRESS = "invalid_address"
    INVALID_PAYMENT_METHOD = "invalid_payment_method"
    INSUFFICIENT_STOCK = "insufficient_stock"
    INVALID_COUPON = "invalid_coupon"
    COUPON_CODE_TAKEN = "coupon_code_taken"
    COUPON_IN_USE = "coupon_in_use"
    FORBIDDEN = "forbidden"
    VALIDATION_ERROR = "validation_error"
    INTERNAL_ERROR = "internal_error"


_NOT_FOUND = {
    ErrorKind.PRODUCT_NOT_FOUND,
    ErrorKind.LINE_NOT_FOUND,
    ErrorKind.COUPON_NOT_FOUND,
    ErrorKind.INVALID_ADDRESS,
}

DEFAULT_MESSAGES = {
    ErrorKind.INVALID_QUANTITY: "quantity must be >= 1",
    ErrorKind.INVALID_PRICE: "unit price cannot be negative",
    ErrorKind.INVALID_DISCOUNT: "discount percent must be between 0 and 100",
    ErrorKind.PRODUCT_NOT_FOUND: "product not found",
    ErrorKind.LINE_NOT_FOUND: "product not found in cart",
    ErrorKind.COUPON_NOT_FOUND: "invalid coupon code",
    ErrorKind.COUPON_INACTIVE: "coupon cannot be used",
    ErrorKind.COUPON_EXPIRED: "coupon has expired",
    ErrorKind.COUPON_LIMIT_REACHED: "coupon usage limit reached",
    ErrorKind.BELOW_MINIMUM_ORDER: "order amount is below the coupon minimum",
    ErrorKind.SCOPE_MISMATCH: "coupon is not valid for the items in this cart",
    ErrorKind.EMPTY_CART: "cart is empty",
    ErrorKind.INVALID_ADDRESS: "address not found",
    ErrorKind.INVALID_PAYMENT_METHOD: "unsupported payment method",
    ErrorKind.INSUFFICIENT_STOCK: "insufficient stock available",
    ErrorKind.INVALID_COUPON: "invalid coupon data",
    ErrorKind.COUPON_CODE_TAKEN: "coupon code already exists",
    ErrorKind.COUPON_IN_USE: "cannot delete coupon that has been used; deactivate it instead",
    ErrorKind.FORBIDDEN: "forbidden",
    ErrorKind.VALIDATION_ERROR: "invalid request",
    ErrorKind.INTERNAL_ERROR: "internal server error",
}


@dataclass(frozen=True)
class StoreError:
    kind: ErrorKind
    message: str
    conflict: bool = False
    data: dict = field(default_factory=dict)

    @property
    def retryable(self) -> bool:
        return self.conflict

    @property
    def http_status(self) -> int:
        if self.kind is ErrorKind.INTERNAL_ERROR:
            return 500
        if self.conflict:
            return 409
        if self.kind is ErrorKind.FORBIDDEN:
            return 403
        if self.kind in _NOT_FOUND:
            return 404
        if self.kind is ErrorKind.VALIDATION_ERROR:
            return 422
        return 400

    def as_api(self) -> dict:
        out = {"error_kind": self.kind.value, **self.data}
        if self.conflict:
            out["retryable"] = True
        return out


@dataclass(frozen=True)
class Result:
    value: Any = None
    error: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def success(value=None) -> Result:
    return Result(value=value)


def failure(kind: ErrorKind, message: str | None = None, *, conflict: bool = False, **data) -> Result:
    return Result(error=StoreError(kind, message or DEFAULT_MESSAGES[kind], conflict, data))
