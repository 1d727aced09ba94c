import math
from typing import Any, List


def page_offset(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit


def paginated(data: List[Any], *, total: int, page: int, limit: int) -> dict:
    return {
        "success": True,
        "count": len(data),
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "currentPage": page,
        "data": data,
    }
