"""
Pydantic schemas for profile input and directory seeding
"""

import re
from typing import Optional
from pydantic import BaseModel, Field, field_validator


ACCOUNT_NUMBER_PATTERN = re.compile(r"^\d{10}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_account_number(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not ACCOUNT_NUMBER_PATTERN.match(value):
        raise ValueError("Account number must be exactly 10 digits")
    return value


def _check_email(value: str) -> str:
    value = value.strip()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


class RegistrationProfile(BaseModel):
    username: str = Field(..., min_length=1)
    email: str
    display_name: str = Field(..., min_length=1)
    account_number: Optional[str] = Field(None, description="Generated when omitted")

    @field_validator("account_number")
    @classmethod
    def validate_account_number(cls, value):
        return _check_account_number(value)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value):
        return _check_email(value)


class SeedAccount(BaseModel):
    """Directory entry created at process start"""
    username: str = Field(..., min_length=1)
    email: str
    display_name: str
    account_number: str

    @field_validator("account_number")
    @classmethod
    def validate_account_number(cls, value):
        return _check_account_number(value)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value):
        return _check_email(value)
