# bazaar/order/routes.py
from flask import current_app, request

from ..extensions import db
from ..model import Order
from ..utils.api import err, ok, page_args
from ..utils.decorators import current_user, login_required
from ..utils.pagination import paginate
from . import bp


@bp.get("")
@login_required
def list_orders():
    """
    Query params:
      - page, per_page
      - status=unfulfilled|fulfilled
    """
    page, per = page_args(request, current_app.config.get("MAX_PAGE_SIZE", 100))
    q = db.session.query(Order).filter(Order.user_id == current_user().id)

    status = request.args.get("status")
    if status:
        q = q.filter(Order.fulfillment_status == status)

    q = q.order_by(Order.created_at.desc(), Order.id.desc())
    items, meta = paginate(q, page, per)
    return ok("orders", {"orders": [o.as_api() for o in items], "pagination": meta})

@bp.get("/<int:order_id>")
@login_required
def get_order(order_id: int):
    o = db.session.get(Order, order_id)
    # someone else's order is reported exactly like a missing one
    if not o or o.user_id != current_user().id:
        return err("order not found", 404, {"error_kind": "not_found"})
    return ok("order", o.as_api())
