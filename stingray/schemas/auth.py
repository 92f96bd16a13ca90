"""Pydantic schemas for authentication endpoints."""

from pydantic import BaseModel, Field, field_validator, model_validator


class LoginRequest(BaseModel):
    """Schema for login credentials."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip()
        return v


class IdentityResponse(BaseModel):
    """Who the caller is; anonymous callers get user_id None."""

    user_id: int | None
    username: str | None
    groups: list[str]
    authenticated: bool


class MessageResponse(BaseModel):
    message: str


class PasswordResetRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip()
        return v


class PasswordResetConfirm(BaseModel):
    """New password for the account a reset token was issued to."""

    token: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=8, max_length=255)
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self) -> "PasswordResetConfirm":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self
