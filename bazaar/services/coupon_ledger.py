# bazaar/services/coupon_ledger.py
import logging

from sqlalchemy import func, or_, update

from ..model import Coupon, CouponUsage
from ..utils.money import D, ZERO, round_money, to_string_money
from ..utils.pagination import paginate
from .errors import ErrorKind, failure, success

log = logging.getLogger(__name__)


class CouponLedger:
    """
    Redemption records and the usage counter they drive.

    `record_usage` works inside the caller's transaction and never commits;
    the checkout owns the commit/rollback decision.
    """

    def __init__(self, session):
        self.session = session

    def record_usage(self, coupon: Coupon, user_id, order_id, discount_amount, order_amount):
        # conditional increment: a concurrent checkout may have taken the last use
        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon.id)
            .where(or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit))
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        if self.session.execute(stmt).rowcount != 1:
            log.info("coupon usage lost race", extra={"coupon_code": coupon.code, "user_id": user_id})
            return failure(ErrorKind.COUPON_LIMIT_REACHED, conflict=True, coupon_code=coupon.code)

        usage = CouponUsage(
            coupon_id=coupon.id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=round_money(discount_amount),
            order_amount=round_money(order_amount),
        )
        self.session.add(usage)
        self.session.flush()
        self.session.expire(coupon, ["used_count"])
        return success(usage)

    def usage_stats(self, coupon_id):
        coupon = self.session.get(Coupon, coupon_id)
        if coupon is None:
            return failure(ErrorKind.COUPON_NOT_FOUND, "coupon not found")

        uses, discount, value = (
            self.session.query(
                func.count(CouponUsage.id),
                func.coalesce(func.sum(CouponUsage.discount_amount), 0),
                func.coalesce(func.sum(CouponUsage.order_amount), 0),
            )
            .filter(CouponUsage.coupon_id == coupon_id)
            .one()
        )
        uses = int(uses or 0)
        discount, value = D(discount), D(value)
        return success({
            "coupon_id": coupon.id,
            "code": coupon.code,
            "used_count": coupon.used_count,
            "usage_limit": coupon.usage_limit,
            "total_uses": uses,
            "total_discount_given": to_string_money(discount),
            "total_order_value": to_string_money(value),
            "avg_discount": to_string_money(discount / uses if uses else ZERO),
            "avg_order_value": to_string_money(value / uses if uses else ZERO),
        })

    def usage_history(self, coupon_ids=None, start=None, end=None, page=1, per_page=20):
        q = self.session.query(CouponUsage)
        if coupon_ids is not None:
            q = q.filter(CouponUsage.coupon_id.in_(list(coupon_ids)))
        if start:
            q = q.filter(CouponUsage.used_at >= start)
        if end:
            q = q.filter(CouponUsage.used_at < end)

        q = q.order_by(CouponUsage.used_at.desc(), CouponUsage.id.desc())
        items, meta = paginate(q, page, per_page)
        return success({"usage": [u.as_api() for u in items], "pagination": meta})
