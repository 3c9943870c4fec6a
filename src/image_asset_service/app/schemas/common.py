from typing import Generic, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class Envelope(BaseModel, Generic[DataT]):
    """Successful JSON response wrapper"""

    success: bool = Field(default=True)
    data: DataT


class MessageData(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Error response envelope"""

    success: bool = Field(default=False)
    error: str = Field(..., description="Human readable error message")
    code: str | None = Field(None, description="Machine readable error code")
    details: list | None = Field(None, description="Itemized failure reasons")
