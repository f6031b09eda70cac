import math
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100


class CamelModel(BaseModel):
    """Base schema: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self, **kwargs: Any) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class Page(CamelModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_previous: bool


def normalize_pagination(page: int, limit: int) -> tuple[int, int]:
    """Clamp page and limit to the supported range."""
    page = page if page and page >= 1 else 1
    limit = limit if limit and 1 <= limit <= MAX_PAGE_LIMIT else DEFAULT_PAGE_LIMIT
    return page, limit


def build_page(items: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return Page[Any](
        items=items,
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1,
    ).to_wire()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def accepted_response(entity_id: str, correlation_id: str, message: str) -> Dict[str, Any]:
    """Body of a 202 returned by every write endpoint."""
    return {
        "success": True,
        "data": {"id": entity_id, "correlationId": correlation_id},
        "message": message,
        "timestamp": utc_now_iso(),
    }


def read_response(data: Any, metadata: Dict[str, Any]) -> Dict[str, Any]:
    return {"success": True, "data": data, "metadata": metadata}


def not_found_response(message: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Body of a 404 on the read path; metadata still reports the cache miss."""
    return {"success": False, "message": message, "data": None, "metadata": metadata}
