"""
Shared schema base classes and generic responses.
"""

from typing import Optional, Union
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


# Prices keep their JSON type: 110 stays an int, 110.5 stays a float
Price = Union[int, float]


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys (snake_case is accepted on input)"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SuccessResponse(CamelModel):
    """Generic success response"""
    success: bool = True
    message: str
    producer_slug: Optional[str] = None
