"""
Small helpers shared by the workflow services.
"""

from datetime import datetime
from functools import lru_cache
from typing import Any, Optional
import re

from bson import ObjectId

from editorial.core.error_handling import NotFoundError


@lru_cache(maxsize=8)
def manuscript_id_pattern(prefix: str) -> re.Pattern:
    """``<prefix>-<year>-<sequence>``; the sequence is zero-padded to at least five digits."""
    return re.compile(rf"^{re.escape(prefix)}-\d{{4}}-\d{{5,}}$")


class WorkflowUtils:
    """Identifier and paging helpers."""

    @staticmethod
    def to_object_id(value: Any, resource: str = "record") -> ObjectId:
        """Parse an id; a malformed id cannot resolve, so it is reported as not found."""
        if isinstance(value, ObjectId):
            return value
        if value is None or not ObjectId.is_valid(value):
            raise NotFoundError(f"{resource.capitalize()} not found", resource=resource, resource_id=value)
        return ObjectId(value)

    @staticmethod
    def format_manuscript_id(prefix: str, year: int, sequence: int) -> str:
        """Human-readable manuscript identifier, e.g. PUJMS-2026-00042."""
        return f"{prefix}-{year}-{sequence:05d}"

    @staticmethod
    def is_manuscript_id(value: Any, prefix: str) -> bool:
        return isinstance(value, str) and manuscript_id_pattern(prefix).match(value) is not None

    @staticmethod
    def skip_for(page: int, size: int) -> int:
        return (max(page, 1) - 1) * size

    @staticmethod
    def current_year(now: Optional[datetime] = None) -> int:
        return (now or datetime.utcnow()).year
