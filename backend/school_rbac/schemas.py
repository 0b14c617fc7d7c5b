from datetime import datetime
from typing import Annotated, Generic, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import UserRole
from .security import MAX_PASSWORD_BYTES


T = TypeVar("T")

# largest value an INTEGER primary key column can hold
MAX_ID = 2**63 - 1


def _fits_bcrypt(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    return value


Password = Annotated[str, Field(min_length=1), AfterValidator(_fits_bcrypt)]
RecordId = Annotated[int, Field(ge=1, le=MAX_ID)]


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: str
    data: T | None = None


# --- accounts ---------------------------------------------------------------


class RegisterRequest(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    password: Password
    role: UserRole = UserRole.STUDENT


class LoginRequest(ApiModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)


class RefreshRequest(ApiModel):
    refresh_token: str | None = None


class ChangePasswordRequest(ApiModel):
    old_password: str | None = None
    new_password: Password | None = None


class UserOut(ApiModel):
    id: int
    name: str
    email: str
    role: UserRole
    created_at: datetime


class TokenPair(ApiModel):
    access_token: str
    refresh_token: str


class LoginResult(TokenPair):
    user: UserOut


# --- schools ----------------------------------------------------------------


class SchoolCreateRequest(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    manager_id: RecordId | None = None


class SchoolOut(ApiModel):
    id: int
    name: str
    manager_id: int | None = None


# --- teachers ---------------------------------------------------------------


class TeacherCreateRequest(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    subject: str = Field(min_length=1, max_length=255)
    school_id: RecordId
    class_name: str | None = Field(default=None, max_length=50)
    user_id: RecordId | None = None


class TeacherUpdateRequest(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    subject: str | None = Field(default=None, min_length=1, max_length=255)
    class_name: str | None = Field(default=None, max_length=50)
    user_id: RecordId | None = None


class TeacherOut(ApiModel):
    id: int
    name: str
    subject: str
    class_name: str | None = None
    school_id: int
    user_id: int | None = None
    school: SchoolOut | None = None
    user: UserOut | None = None


# --- students ---------------------------------------------------------------


class StudentCreateRequest(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    grade: str = Field(min_length=1, max_length=50)
    school_id: RecordId
    parent_id: RecordId | None = None
    user_id: RecordId | None = None


class StudentUpdateRequest(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    grade: str | None = Field(default=None, min_length=1, max_length=50)
    parent_id: RecordId | None = None
    user_id: RecordId | None = None


class StudentSummary(ApiModel):
    id: int
    name: str
    grade: str
    school_id: int
    parent_id: int | None = None
    user_id: int | None = None


class ParentSummary(ApiModel):
    id: int
    name: str
    phone: str | None = None
    email: str | None = None
    user_id: int | None = None


class StudentOut(StudentSummary):
    school: SchoolOut | None = None
    parent: ParentSummary | None = None


# --- parents ----------------------------------------------------------------


class ParentCreateRequest(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    phone: str | None = None
    email: str | None = None
    user_id: RecordId | None = None
    student_ids: list[RecordId] = Field(default_factory=list)


class ParentUpdateRequest(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = None
    email: str | None = None
    user_id: RecordId | None = None
    student_ids: list[RecordId] | None = None


class ParentOut(ParentSummary):
    students: list[StudentSummary] = []
    user: UserOut | None = None
