"""Pydantic schemas for account requests."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from app.murrs.constants import ROLES


# Passwords are compared byte for byte, so surrounding spaces are part of them.
_UNSTRIPPED_FIELDS = frozenset({"password", "current_password"})


class UserBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _strip_and_blank_to_none(cls, v: Any, info: ValidationInfo) -> Any:
        if not isinstance(v, str):
            return v
        if not v.strip():
            return None
        return v if info.field_name in _UNSTRIPPED_FIELDS else v.strip()


def _check_role(v: str | None) -> str | None:
    if v is not None and v not in ROLES:
        raise ValueError(f"must be one of: {', '.join(ROLES)}")
    return v


class RegisterRequest(UserBaseModel):
    email: str = Field(max_length=320)
    password: str
    full_name: str = Field(min_length=1, max_length=255)
    role: str = "student"
    school_id: str | None = Field(default=None, max_length=64)
    school: str | None = Field(default=None, max_length=255)
    department: str | None = Field(default=None, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.lower()
        local, _, domain = v.partition("@")
        if not local or not domain or "." not in domain:
            raise ValueError("not a valid email address")
        return v

    @field_validator("role", mode="before")
    @classmethod
    def default_role(cls, v: Any) -> Any:
        return "student" if v is None else v

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        return _check_role(v) or "student"


class UserUpdateRequest(UserBaseModel):
    full_name: str | None = Field(default=None, max_length=255)
    school_id: str | None = Field(default=None, max_length=64)
    school: str | None = Field(default=None, max_length=255)
    department: str | None = Field(default=None, max_length=255)
    password: str | None = None
    current_password: str | None = None


class RoleUpdateRequest(UserBaseModel):
    role: str

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        return _check_role(v) or v


class ActivateRequest(UserBaseModel):
    is_active: bool = True


class UserListQuery(UserBaseModel):
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=100, ge=1, le=200)
    email: str | None = None
    is_active: bool | None = None
    is_admin: bool | None = None
    role: str | None = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str | None) -> str | None:
        return _check_role(v)


class LoginForm(UserBaseModel):
    username: str
    password: str

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str) -> str:
        return v.lower()


class RefreshRequest(UserBaseModel):
    refresh_token: str
