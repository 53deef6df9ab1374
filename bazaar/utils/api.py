# --- bazaar/utils/api.py ---
from flask import jsonify

from .dates import utcnow

def api_ok(message, data=None):
    return {
        "status": True,
        "message": message,
        "data": {
            **(data or {}),
            "API_TIME_HUMAN": utcnow().strftime("%Y-%m-%d %H:%M:%S"),
        }
    }

def api_error(message, data=None):
    return {
        "status": False,
        "message": message,
        "data": {
            **(data or {}),
            "API_TIME_HUMAN": utcnow().strftime("%Y-%m-%d %H:%M:%S"),
        }
    }

# ---- response helpers used by every blueprint ------------------------------
def ok(msg, data=None, status=200):
    r = jsonify(api_ok(msg, data)); r.status_code = status; return r

def err(msg, status=400, data=None):
    r = jsonify(api_error(msg, data)); r.status_code = status; return r

def fail(error):
    """Render a StoreError (see services.errors) as an error envelope."""
    return err(error.message, error.http_status, error.as_api())

def page_args(request, max_per_page: int = 100):
    try:
        page = max(1, int(request.args.get("page", 1)))
    except (TypeError, ValueError):
        page = 1
    try:
        per = int(request.args.get("per_page", 20))
    except (TypeError, ValueError):
        per = 20
    return page, min(max(1, per), max_per_page)
