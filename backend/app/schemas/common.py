"""Shared schemas for paginated and error responses."""

import math

from pydantic import BaseModel, Field


class PaginationMeta(BaseModel):
    """Page-based pagination metadata."""

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        return cls(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit))


class ErrorResponse(BaseModel):
    """Body of every non-2xx response raised by the services."""

    error: str
    message: str
