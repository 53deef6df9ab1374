# bazaar/services/checkout_service.py
"""
Atomic checkout: cart -> order in a single storage transaction.

Rows are locked in a fixed order (cart, products by ascending id, coupon)
and stock and coupon usage only move through conditional updates, so two
checkouts racing for the last unit cannot both win even on engines that
ignore ``SELECT ... FOR UPDATE``.

Every step hands back ``(value, error)``; the first error aborts the
attempt with an explicit rollback. Storage exceptions also roll back and
are re-raised.
"""
from __future__ import annotations
import logging
import secrets
from enum import Enum

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..model import Address, Cart, Coupon, Order, OrderItem, Product, User
from ..model.cart import STATUS_ACTIVE, STATUS_CHECKED_OUT
from ..model.order import FULFILLMENT_UNFULFILLED
from ..utils.dates import utcnow
from ..utils.logging import request_context
from ..utils.money import D, ZERO, clamp_zero, round_money, subtract
from .coupon_ledger import CouponLedger
from .coupon_service import check_failure, evaluate_for_cart
from .errors import ErrorKind, failure, success

log = logging.getLogger(__name__)


class CheckoutState(str, Enum):
    VALIDATING = "validating"
    STOCK_RESERVED = "stock_reserved"
    ORDER_CREATED = "order_created"
    COUPON_RECORDED = "coupon_recorded"
    CART_CLOSED = "cart_closed"
    COMMITTED = "committed"
    ABORTED = "aborted"


def new_order_number(user_id, now=None) -> str:
    now = now or utcnow()
    return f"ORD-{now:%Y%m%d%H%M%S}-{user_id}-{secrets.token_hex(3)}"


class CheckoutTransaction:
    """One checkout attempt. Not reusable: build a new one per attempt."""

    def __init__(self, session, user_id, address_id, payment_method, *, payment_methods=(), clock=utcnow):
        self.session = session
        self.user_id = user_id
        self.address_id = address_id
        self.payment_method = (payment_method or "").strip().lower()
        self.payment_methods = tuple(payment_methods)
        self.clock = clock
        self.state = CheckoutState.VALIDATING

    def run(self):
        try:
            result = self._run()
        except SQLAlchemyError:
            self.session.rollback()
            self.state = CheckoutState.ABORTED
            log.exception("checkout failed", extra={"user_id": self.user_id})
            raise

        if not result.ok:
            return self._abort(result)
        log.info(
            "checkout committed",
            extra={**request_context(), "user_id": self.user_id, "order_number": result.value["order"]["order_number"]},
        )
        return result

    def _abort(self, result):
        self.session.rollback()
        log.info(
            "checkout rejected",
            extra={
                **request_context(),
                "user_id": self.user_id,
                "error_kind": result.error.kind.value,
                "checkout_state": self.state.value,
            },
        )
        self.state = CheckoutState.ABORTED
        return result

    # ---- steps ---------------------------------------------------------
    def _run(self):
        now = self.clock()

        cart, error = self._lock_cart()
        if error:
            return error
        address = Address.find_for_user(self.user_id, self.address_id, self.session)
        if address is None:
            return failure(ErrorKind.INVALID_ADDRESS, address_id=self.address_id)
        if self.payment_method not in self.payment_methods:
            return failure(
                ErrorKind.INVALID_PAYMENT_METHOD,
                f"payment method must be one of: {', '.join(self.payment_methods)}",
            )

        products, error = self._lock_products(cart)
        if error:
            return error
        coupon, error = self._lock_coupon(cart, now)
        if error:
            return error
        error = self._reserve_stock(cart)
        if error:
            return error
        self.state = CheckoutState.STOCK_RESERVED

        order = self._create_order(cart, address, products, now)
        self.state = CheckoutState.ORDER_CREATED

        if coupon is not None:
            recorded = CouponLedger(self.session).record_usage(
                coupon, self.user_id, order.id, order.discount_amount, order.subtotal,
            )
            if not recorded.ok:
                return recorded
        self.state = CheckoutState.COUPON_RECORDED

        cart.status = STATUS_CHECKED_OUT
        cart.order_id = order.id
        cart.checked_out_at = now
        self.state = CheckoutState.CART_CLOSED

        self.session.flush()
        stock_remaining = {
            str(pid): stock
            for pid, stock in self.session.query(Product.id, Product.stock).filter(Product.id.in_(list(products)))
        }
        summary = {
            "order": order.as_api(),
            "payment_details": cart.payment_details(),
            "stock_remaining": stock_remaining,
        }
        self.session.commit()
        self.state = CheckoutState.COMMITTED
        return success(summary)

    def _lock_cart(self):
        cart = (
            self.session.query(Cart)
            .filter(Cart.user_id == self.user_id, Cart.status == STATUS_ACTIVE)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if cart is None or cart.is_empty():
            return None, failure(ErrorKind.EMPTY_CART)
        return cart, None

    def _lock_products(self, cart: Cart):
        ids = sorted(set(cart.product_ids()))
        rows = (
            self.session.query(Product)
            .filter(Product.id.in_(ids))
            .order_by(Product.id.asc())
            .with_for_update()
            .populate_existing()
            .all()
        )
        products = {p.id: p for p in rows}

        # every line is checked before any stock moves
        for line in sorted(cart.items, key=lambda i: i.product_id):
            product = products.get(line.product_id)
            if product is None or not product.is_available:
                return None, failure(ErrorKind.PRODUCT_NOT_FOUND, product_id=line.product_id)
            if int(product.stock or 0) < line.quantity:
                return None, self._short(product, line.quantity)
        return products, None

    def _lock_coupon(self, cart: Cart, now):
        application = cart.applied_coupon
        if application is None:
            return None, None

        coupon = (
            self.session.query(Coupon)
            .filter(Coupon.id == application.coupon_id)
            .with_for_update(of=Coupon)
            .populate_existing()
            .first()
        )
        if coupon is None:
            return None, failure(ErrorKind.COUPON_NOT_FOUND, coupon_code=application.code)

        cart.recompute_totals()
        check = evaluate_for_cart(self.session, coupon, cart, now)
        if not check.ok:
            conflict = check.failure is ErrorKind.COUPON_LIMIT_REACHED
            return None, check_failure(coupon, check, conflict=conflict)

        cart.applied_coupon = application.with_discount(check.discount)
        cart.recompute_totals()
        return coupon, None

    def _reserve_stock(self, cart: Cart):
        for line in sorted(cart.items, key=lambda i: i.product_id):
            stmt = (
                update(Product)
                .where(Product.id == line.product_id, Product.stock >= line.quantity)
                .values(stock=Product.stock - line.quantity)
                .execution_options(synchronize_session=False)
            )
            if self.session.execute(stmt).rowcount != 1:
                product = self.session.get(Product, line.product_id, populate_existing=True)
                return self._short(product, line.quantity)
        return None

    def _short(self, product: Product, requested: int):
        return failure(
            ErrorKind.INSUFFICIENT_STOCK,
            f"insufficient stock for {product.name}",
            conflict=True,
            product_id=product.id,
            available=int(product.stock or 0),
            requested=requested,
        )

    def _create_order(self, cart: Cart, address: Address, products: dict, now) -> Order:
        subtotal = cart.subtotal()
        discount = round_money(cart.coupon_discount or 0)
        delivery_fee = round_money(cart.delivery_fee or 0)
        application = cart.applied_coupon

        user = self.session.get(User, self.user_id)
        order = Order(
            order_number=new_order_number(self.user_id, now),
            user_id=self.user_id,
            customer_name=address.full_name,
            customer_email=cart.email or (user.email if user else None),
            customer_phone=address.phone,
            shipping_address=address.as_api(),
            subtotal=subtotal,
            discount_amount=discount,
            delivery_fee=delivery_fee,
            tax_amount=ZERO,
            total_amount=clamp_zero(subtract(subtotal, discount) + delivery_fee),
            coupon_code=application.code if application else None,
            payment_method=self.payment_method,
            payment_status="paid",
            fulfillment_status=FULFILLMENT_UNFULFILLED,
            cart_uuid=cart.uuid,
        )
        for line in cart.items:
            product = products.get(line.product_id)
            order.items.append(OrderItem(
                product_id=line.product_id,
                vendor_id=product.vendor_id if product else None,
                product_name=line.product_name,
                product_image=line.product_image,
                sku=product.sku if product else None,
                quantity=line.quantity,
                unit_price=round_money(line.unit_price),
                discount_percent=D(line.discount_percent or 0),
                discount_per_item=line.unit_discount(),
                final_price=line.discounted_unit_price(),
                line_total=line.line_subtotal(),
                product_attributes=line.attributes,
            ))
        self.session.add(order)
        self.session.flush()
        return order


class CheckoutService:
    def __init__(self, session, payment_methods=(), clock=utcnow):
        self.session = session
        self.payment_methods = tuple(payment_methods)
        self.clock = clock

    def summary(self, user_id):
        """What the checkout page shows: cart, item count, payment details and the caller's addresses."""
        cart = (
            self.session.query(Cart)
            .filter(Cart.user_id == user_id, Cart.status == STATUS_ACTIVE)
            .first()
        )
        if cart is None or cart.is_empty():
            return failure(ErrorKind.EMPTY_CART)

        addresses = (
            self.session.query(Address)
            .filter(Address.user_id == user_id)
            .order_by(Address.is_default.desc(), Address.id.asc())
            .all()
        )
        return success({
            "cart": cart.as_api(),
            "item_count": cart.item_count(),
            "payment_details": cart.payment_details(),
            "addresses": [a.as_api() for a in addresses],
            "payment_methods": list(self.payment_methods),
        })

    def complete(self, user_id, address_id, payment_method):
        tx = CheckoutTransaction(
            self.session, user_id, address_id, payment_method,
            payment_methods=self.payment_methods, clock=self.clock,
        )
        return tx.run()
