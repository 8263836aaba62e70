import math
from typing import Any, Optional, Sequence

from release_manager.domain.releases import (
    DEFAULT_ORDER,
    DEFAULT_ORDER_BY,
    DEFAULT_PER_PAGE,
    SORTABLE_COLUMNS,
    ReleasePage,
    ReleaseRecord,
)


def normalize_order_by(order_by: Optional[str]) -> str:
    value = str(order_by or "").strip()
    return value if value in SORTABLE_COLUMNS else DEFAULT_ORDER_BY


def normalize_order(order: Optional[str]) -> str:
    value = str(order or "").strip().lower()
    if not value:
        return DEFAULT_ORDER
    return "desc" if value == "desc" else "asc"


def normalize_page(page: Any) -> int:
    try:
        value = int(page)
    except (TypeError, ValueError):
        return 1
    return max(1, value)


def query(
    records: Sequence[ReleaseRecord],
    order_by: Optional[str] = None,
    order_direction: Optional[str] = None,
    page: Any = 1,
    page_size: int = DEFAULT_PER_PAGE,
) -> ReleasePage:
    """Sort ``records`` by a whitelisted column and slice out one page.

    Values are compared as strings, timestamps included. Ties keep their
    input order in both directions.
    """
    column = normalize_order_by(order_by)
    order = normalize_order(order_direction)
    current_page = normalize_page(page)
    size = page_size if isinstance(page_size, int) and page_size > 0 else DEFAULT_PER_PAGE

    items = sorted(records, key=lambda r: str(getattr(r, column)), reverse=(order == "desc"))

    total_items = len(items)
    start = (current_page - 1) * size
    return ReleasePage(
        items=list(items[start : start + size]),
        total_items=total_items,
        total_pages=int(math.ceil(total_items / size)),
        page=current_page,
        page_size=size,
        order_by=column,
        order=order,
    )

