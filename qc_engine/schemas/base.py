"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for response schemas that read from ORM models.

    Usage:
        class ReworkJobCardResponse(BaseResponseSchema):
            id: UUID
            rework_number: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Unknown fields are ignored for forward compatibility.
    """
    model_config = ConfigDict(
        extra='ignore',
    )
