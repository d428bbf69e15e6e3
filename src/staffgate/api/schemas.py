"""
Request body and query schemas.

JSON uses camelCase keys; models expose snake_case attributes.
"""

import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, TypeVar

from aiohttp import web
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..auth.models import StaffStatus
from ..errors import ValidationError


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ModelT = TypeVar("ModelT", bound=BaseModel)


class RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


def _check_email(value: str) -> str:
    value = value.strip()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value.lower()


Email = Annotated[str, AfterValidator(_check_email)]


class LoginRequest(RequestModel):
    email: Email
    password: str = Field(min_length=1)


class CreateStaffRequest(RequestModel):
    email: Email
    password: str
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    employee_id: Optional[str] = None


class UpdateStaffRequest(RequestModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    status: Optional[StaffStatus] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class ChangePasswordRequest(RequestModel):
    current_password: str = Field(min_length=1)
    new_password: str


class AssignRoleRequest(RequestModel):
    role_id: str = Field(min_length=1)


class CreateRoleRequest(RequestModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)

    @field_validator("permissions")
    @classmethod
    def _scopes_not_blank(cls, value: List[str]) -> List[str]:
        cleaned = [scope.strip() for scope in value]
        if any(not scope for scope in cleaned):
            raise ValueError("Permission scopes must not be empty")
        return cleaned


class StaffListQuery(RequestModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    status: Optional[Literal["active", "inactive", "suspended", "all"]] = None
    department: Optional[str] = None
    search: Optional[str] = None


class ActivityQuery(RequestModel):
    staff_id: Optional[str] = None
    limit: int = Field(default=100, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


def _field_errors(error: PydanticValidationError) -> List[Dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in err["loc"]) or "body",
            "message": err["msg"],
        }
        for err in error.errors()
    ]


def validate_model(model: Type[ModelT], data: Any) -> ModelT:
    """
    Validate data against a schema.

    Raises:
        ValidationError: With one detail entry per invalid field
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Validation failed", details=_field_errors(e)) from e


async def parse_body(request: web.Request, model: Type[ModelT]) -> ModelT:
    try:
        data = await request.json()
    except (ValueError, LookupError) as e:
        # Bad JSON or a body that does not decode in its declared charset
        raise ValidationError("Request body must be valid JSON") from e
    return validate_model(model, data)


def parse_query(request: web.Request, model: Type[ModelT]) -> ModelT:
    return validate_model(model, dict(request.query))
