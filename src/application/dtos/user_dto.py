from __future__ import annotations

from pydantic import Field

from src.application.dtos.auth_dto import ProfileOut
from src.application.dtos.common_dto import CamelModel

# snake_case attribute -> JSON name of the updatable profile fields
FIELD_ALIASES = {
    "first_name": "firstName",
    "last_name": "lastName",
    "age": "age",
    "email": "email",
}


class UpdateUserRequest(CamelModel):
    """Profile update. Only these fields are read; anything else in the body is ignored."""
    first_name: str | None = Field(None, alias="firstName")
    last_name: str | None = Field(None, alias="lastName")
    age: int | str | None = Field(None)
    email: str | None = Field(None)


class UserResponse(CamelModel):
    success: bool = Field(True)
    user: ProfileOut


class UpdateUserResponse(CamelModel):
    success: bool = Field(True)
    message: str = Field("User updated successfully")
    updated_fields: list[str] = Field(..., alias="updatedFields", examples=[["firstName", "age"]])
    user: ProfileOut
