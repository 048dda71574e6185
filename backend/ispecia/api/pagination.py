"""
Pagination helper shared by list endpoints.
"""
from math import ceil
from typing import Any

from sqlalchemy import select, func, Select
from sqlalchemy.ext.asyncio import AsyncSession


async def paginate(db: AsyncSession, query: Select, page: int, per_page: int) -> tuple[list[Any], dict]:
    """
    Run ``query`` for one page.

    Returns the rows and the ``page/perPage/totalItems/totalPages`` envelope
    fields.
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total_items = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(query.offset((page - 1) * per_page).limit(per_page))
    rows = list(result.scalars().unique().all())

    meta = {
        "page": page,
        "perPage": per_page,
        "totalItems": total_items,
        "totalPages": ceil(total_items / per_page) if total_items > 0 else 1,
    }
    return rows, meta
