"""Page/limit handling for list endpoints."""

import math
from typing import Any, Dict, Tuple

from .errors import ValidationError


def check_page(page: int, limit: int, max_limit: int) -> Tuple[int, int]:
    """Validate page parameters and return ``(limit, offset)``.

    Raises:
        ValidationError: If page or limit are out of range
    """
    issues = []
    if page < 1:
        issues.append({"field": "page", "message": "Page must be at least 1"})
    if limit < 1 or limit > max_limit:
        issues.append({"field": "limit", "message": f"Limit must be between 1 and {max_limit}"})
    if issues:
        raise ValidationError("Invalid pagination", issues)
    return limit, (page - 1) * limit


def paginate(total: int, page: int, limit: int) -> Dict[str, Any]:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }
