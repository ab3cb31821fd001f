# Overview: Shared page/per_page envelope for list endpoints.

from __future__ import annotations


def paginate(query, *, page: int | None, per_page: int | None, serialize=None) -> dict:
    """
    Run query and wrap the rows in the list envelope the dashboard expects.

    page=None returns every row without pagination metadata.
    """
    serialize = serialize or (lambda obj: obj.to_dict())

    if page is None:
        rows = query.all()
        return {"items": [serialize(r) for r in rows], "count": len(rows)}

    per_page = per_page or 50
    page = max(page, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
