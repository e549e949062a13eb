# missionhub/utils/pagination.py
"""Paging for the roster listing endpoints."""
from math import ceil
from typing import Any, Callable, Dict, Optional

from fastapi import Query
from pydantic import BaseModel, Field


class PaginationParams(BaseModel):
    page: int = Field(1, ge=1)
    size: int = Field(20, ge=1, le=100)


class PageMeta(BaseModel):
    page: int
    size: int
    total: int
    total_pages: int
    has_next: bool


class Paginator:
    @staticmethod
    def get_pagination_params(
        page: int = Query(1, ge=1, description="Page number"),
        size: int = Query(20, ge=1, le=100, description="Items per page")
    ) -> PaginationParams:
        """FastAPI dependency for pagination parameters."""
        return PaginationParams(page=page, size=size)

    @staticmethod
    def page_response(page: Dict[str, Any], serialize: Optional[Callable[[Any], Any]] = None) -> Dict[str, Any]:
        """Wrap a service page (items, total, page, size) in the listing envelope.

        total, page and size are repeated at the top level for clients that
        read them there.
        """
        total, size = page["total"], page["size"]
        total_pages = ceil(total / size) if size else 0
        items = page["items"]
        if serialize is not None:
            items = [serialize(item) for item in items]
        meta = PageMeta(
            page=page["page"],
            size=size,
            total=total,
            total_pages=total_pages,
            has_next=page["page"] < total_pages,
        )
        return {
            "success": True,
            "items": items,
            "meta": meta.model_dump(),
            "total": total,
            "page": page["page"],
            "size": size,
        }
