# bazaar/checkout/routes.py
from flask import current_app, request

from ..extensions import db
from ..services.checkout_service import CheckoutService
from ..utils.api import err, fail, ok
from ..utils.decorators import current_user, login_required
from . import bp


def _service() -> CheckoutService:
    return CheckoutService(db.session, current_app.config.get("PAYMENT_METHODS", ()))

@bp.get("")
@login_required
def checkout_data():
    result = _service().summary(current_user().id)
    if not result.ok:
        return fail(result.error)
    return ok("checkout data", result.value)

@bp.post("/complete")
@login_required
def complete():
    """
    Body: { "address_id": int, "payment_method": "cod" | "card" | ... }
    Turns the caller's active cart into an order, or changes nothing.
    """
    data = request.get_json(silent=True) or {}
    address_id = data.get("address_id")
    payment_method = data.get("payment_method")
    if address_id is None or not payment_method:
        return err("address_id and payment_method are required", 422, {"error_kind": "validation_error"})
    try:
        address_id = int(address_id)
    except (TypeError, ValueError):
        return err("address_id must be an integer", 422, {"error_kind": "validation_error"})

    result = _service().complete(current_user().id, address_id, str(payment_method))
    if not result.ok:
        return fail(result.error)
    return ok("order placed", result.value, status=201)
