import math
from typing import Any, Dict

from sqlalchemy import or_
from sqlalchemy.orm import Query

MAX_PAGE_SIZE = 100


def paginate(query: Query, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    """Run a query one page at a time: {items, total, pages, current_page}."""
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()

    return {
        "items": items,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
        "current_page": page,
    }


def search_filter(term: str, *columns):
    """Case-insensitive substring match on any of the columns."""
    pattern = f"%{term.strip()}%"
    return or_(*(column.ilike(pattern) for column in columns))
