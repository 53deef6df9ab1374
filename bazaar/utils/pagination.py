# bazaar/utils/pagination.py
import math

def paginate(query, page: int, per_page: int):
    """Offset pagination on a plain SQLAlchemy Query; works with any session."""
    total = query.order_by(None).count()
    items = query.limit(per_page).offset((page - 1) * per_page).all()
    total_pages = math.ceil(total / per_page) if per_page else 0
    return items, {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total,
        "items_per_page": per_page,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }
