"""Response envelope shared by every endpoint: {statusCode, data, message, success}."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    """Base for API schemas: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ApiResponse(CamelModel, Generic[DataT]):
    status_code: int
    data: DataT | None = None
    message: str = "Success"
    success: bool = True

    @classmethod
    def build(cls, status_code: int, data: DataT | None = None, message: str = "Success") -> "ApiResponse[DataT]":
        return cls(status_code=status_code, data=data, message=message, success=status_code < 400)
