"""Common schemas used across the application.

Every request/response model derives from `CamelModel`: the wire format is
camelCase (``containerNumber``), while snake_case field names are still
accepted on input.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PaginatedResponse(CamelModel, Generic[T]):
    """Generic paginated response wrapper.

    Usage:
        response_model=PaginatedResponse[ContainerSummary]

    Returns:
        {
            "items": [...],
            "total": 150,
            "page": 1,
            "limit": 50
        }
    """
    items: list[T]
    total: int
    page: int
    limit: int
