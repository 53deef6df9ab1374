# bazaar/services/cart_service.py
from __future__ import annotations
import logging
import time
from typing import NamedTuple

from ..model import Cart, CartItem, Coupon, CouponApplication, Product, User
from ..model.cart import STATUS_ACTIVE
from ..utils.dates import utcnow
from ..utils.money import D, ZERO, round_money, to_string_money
from .coupon_service import check_failure, evaluate_for_cart
from .errors import ErrorKind, failure, success

log = logging.getLogger(__name__)


class CartChange(NamedTuple):
    """What a cart operation hands back: the cart plus any side notice."""
    cart: Cart | None
    delivery_fee: str = "0.00"
    removed: bool | None = None
    coupon_removed: dict | None = None

    def as_api(self):
        if self.cart is None:
            out = empty_snapshot(self.delivery_fee)
        else:
            out = self.cart.as_api()
        if self.removed is not None:
            out["removed"] = self.removed
        if self.coupon_removed:
            out["coupon_removed"] = self.coupon_removed
        return out


def empty_snapshot(delivery_fee="0.00"):
    fee = to_string_money(delivery_fee)
    return {
        "id": None,
        "uuid": None,
        "invoice_id": None,
        "status": STATUS_ACTIVE,
        "items": [],
        "item_count": 0,
        "payment_details": {
            "bag_total": "0.00",
            "bag_discount": "0.00",
            "product_discount": "0.00",
            "coupon_discount": "0.00",
            "delivery_fee": fee,
            "amount_payable": fee,
            "applied_coupon": None,
        },
        "created_at": None,
        "updated_at": None,
    }


def _quantity(value):
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _price_failure(product: Product):
    if D(product.price) < 0:
        return failure(ErrorKind.INVALID_PRICE, product_id=product.id)
    discount = D(product.discount)
    if discount < 0 or discount > 100:
        return failure(ErrorKind.INVALID_DISCOUNT, product_id=product.id)
    return None


def _stock_failure(product: Product, requested: int):
    available = int(product.stock or 0)
    if requested > available:
        return failure(
            ErrorKind.INSUFFICIENT_STOCK,
            f"only {available} of {product.name} available",
            product_id=product.id,
            available=available,
            requested=requested,
        )
    return None


class CartService:
    """
    Cart lines, totals and the applied coupon for one user's active cart.
    Every mutation recomputes and stores the totals before committing.
    """

    def __init__(self, session, delivery_fee="0.00", clock=utcnow):
        self.session = session
        self.delivery_fee = round_money(delivery_fee)
        self.clock = clock

    # ---- lookup --------------------------------------------------------
    def active_cart(self, user_id, create: bool = False) -> Cart | None:
        cart = (
            self.session.query(Cart)
            .filter(Cart.user_id == user_id, Cart.status == STATUS_ACTIVE)
            .first()
        )
        if cart is None and create:
            user = self.session.get(User, user_id)
            cart = Cart(
                user_id=user_id,
                email=user.email if user else None,
                status=STATUS_ACTIVE,
                delivery_fee=self.delivery_fee,
                bag_total=ZERO,
                product_discount_total=ZERO,
                coupon_discount=ZERO,
                amount_payable=self.delivery_fee,
            )
            self.session.add(cart)
            self.session.flush()
            log.debug("cart created", extra={"user_id": user_id, "cart_id": cart.id})
        return cart

    def _change(self, cart, **kw):
        return success(CartChange(cart, to_string_money(self.delivery_fee), **kw))

    def get_cart(self, user_id):
        return self._change(self.active_cart(user_id))

    def item_count(self, user_id) -> int:
        cart = self.active_cart(user_id)
        return cart.item_count() if cart else 0

    def payment_details(self, user_id):
        cart = self.active_cart(user_id)
        if cart is None:
            return success(empty_snapshot(self.delivery_fee)["payment_details"])
        return success(cart.payment_details())

    # ---- lines ---------------------------------------------------------
    def add_item(self, user_id, product_id, quantity=1):
        qty = _quantity(quantity)
        if qty is None or qty <= 0:
            return failure(ErrorKind.INVALID_QUANTITY)

        product = self.session.get(Product, product_id) if product_id is not None else None
        if product is None or not product.is_available:
            return failure(ErrorKind.PRODUCT_NOT_FOUND, product_id=product_id)
        bad = _price_failure(product)
        if bad:
            return bad

        cart = self.active_cart(user_id)
        line = cart.find_line(product.id) if cart else None
        combined = qty + (line.quantity if line else 0)
        short = _stock_failure(product, combined)
        if short:
            return short

        if cart is None:
            cart = self.active_cart(user_id, create=True)
        if line:
            line.quantity = combined
        else:
            cart.items.append(CartItem(
                product_id=product.id,
                product_name=product.name,
                unit_price=round_money(product.price),
                discount_percent=D(product.discount),
                quantity=qty,
                product_image=product.image_url,
                attributes=product.attributes,
            ))
        if not cart.invoice_id:
            cart.invoice_id = f"INV-{int(time.time() * 1000)}-{user_id}"

        notice = self._settle(cart)
        self.session.commit()
        log.debug("cart item added", extra={"user_id": user_id, "cart_id": cart.id})
        return self._change(cart, coupon_removed=notice)

    def update_item(self, user_id, product_id, quantity):
        qty = _quantity(quantity)
        if qty is None:
            return failure(ErrorKind.INVALID_QUANTITY)

        cart = self.active_cart(user_id)
        line = cart.find_line(product_id) if cart else None
        if line is None:
            return failure(ErrorKind.LINE_NOT_FOUND, product_id=product_id)

        if qty <= 0:
            cart.items.remove(line)
        else:
            product = self.session.get(Product, product_id)
            if product is None:
                return failure(ErrorKind.PRODUCT_NOT_FOUND, product_id=product_id)
            short = _stock_failure(product, qty)
            if short:
                return short
            line.quantity = qty

        notice = self._settle(cart)
        self.session.commit()
        log.debug("cart item updated", extra={"user_id": user_id, "cart_id": cart.id})
        return self._change(cart, coupon_removed=notice)

    def remove_item(self, user_id, product_id):
        cart = self.active_cart(user_id)
        line = cart.find_line(product_id) if cart else None
        if line is None:
            return self._change(cart, removed=False)

        cart.items.remove(line)
        notice = self._settle(cart)
        self.session.commit()
        log.debug("cart item removed", extra={"user_id": user_id, "cart_id": cart.id})
        return self._change(cart, removed=True, coupon_removed=notice)

    def clear_cart(self, user_id):
        cart = self.active_cart(user_id)
        if cart is None:
            return self._change(None)
        cart.items.clear()
        cart.applied_coupon = None
        cart.recompute_totals()
        self.session.commit()
        log.debug("cart cleared", extra={"user_id": user_id, "cart_id": cart.id})
        return self._change(cart)

    # ---- coupon --------------------------------------------------------
    def apply_coupon(self, user_id, code):
        cart = self.active_cart(user_id)
        if cart is None or cart.is_empty():
            return failure(ErrorKind.EMPTY_CART)

        coupon = Coupon.find_by_code(code, self.session)
        if coupon is None:
            return failure(ErrorKind.COUPON_NOT_FOUND)

        now = self.clock()
        check = evaluate_for_cart(self.session, coupon, cart, now)
        if not check.ok:
            self.session.rollback()
            log.info(
                "coupon rejected",
                extra={"user_id": user_id, "coupon_code": coupon.code, "error_kind": check.failure.value},
            )
            return check_failure(coupon, check)

        cart.applied_coupon = CouponApplication(
            coupon_id=coupon.id,
            code=coupon.code,
            kind=coupon.kind,
            value=D(coupon.value),
            discount_amount=check.discount,
            applied_at=now,
        )
        cart.recompute_totals()
        self.session.commit()
        log.info("coupon applied", extra={"user_id": user_id, "coupon_code": coupon.code, "cart_id": cart.id})
        return self._change(cart)

    def remove_coupon(self, user_id):
        cart = self.active_cart(user_id)
        if cart is None:
            return self._change(None, removed=False)
        application = cart.applied_coupon
        cart.applied_coupon = None
        cart.recompute_totals()
        self.session.commit()
        if application:
            log.info("coupon removed", extra={"user_id": user_id, "coupon_code": application.code})
        return self._change(cart, removed=application is not None)

    def _settle(self, cart: Cart):
        """
        Recompute totals after a line change and re-price the applied coupon
        against the new contents. Returns a notice when the coupon had to go.
        """
        cart.recompute_totals()
        application = cart.applied_coupon
        if application is None:
            return None

        coupon = self.session.get(Coupon, application.coupon_id)
        if coupon is None:
            kind = ErrorKind.COUPON_NOT_FOUND
        elif cart.is_empty():
            kind = ErrorKind.EMPTY_CART
        else:
            check = evaluate_for_cart(self.session, coupon, cart, self.clock())
            if check.ok:
                cart.applied_coupon = application.with_discount(check.discount)
                cart.recompute_totals()
                return None
            kind = check.failure

        cart.applied_coupon = None
        cart.recompute_totals()
        log.info(
            "coupon dropped after cart change",
            extra={"cart_id": cart.id, "coupon_code": application.code, "error_kind": kind.value},
        )
        return {"code": application.code, "reason": kind.value}
