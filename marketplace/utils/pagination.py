from sqlalchemy import func
from sqlmodel import select
from typing import Any, Callable, Optional

MAX_PAGE_SIZE = 100


def paginate(
    *,
    session,
    query,
    page: int = 1,
    limit: int = 20,
    serializer: Optional[Callable[[Any], Any]] = None,
):
    """Run ``query`` for one page and wrap it in the list envelope."""
    page = max(page, 1)
    if limit < 1:
        limit = 20
    limit = min(limit, MAX_PAGE_SIZE)

    offset = (page - 1) * limit

    total = session.exec(
        select(func.count()).select_from(query.subquery())
    ).one()

    rows = session.exec(query.offset(offset).limit(limit)).all()
    results = [serializer(row) for row in rows] if serializer else list(rows)

    return {
        "total_items": total,
        "total_pages": (total + limit - 1) // limit,
        "current_page": page,
        "limit": limit,
        "has_more": offset + len(results) < total,
        "results": results,
    }
