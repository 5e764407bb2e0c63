from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

HEX_COLOR_PATTERN = r"^#(?:[0-9a-fA-F]{3}){1,2}$"
DEFAULT_TAG_COLOR = "#3498db"


class TagCategory(str, Enum):
    FUNCTIONAL_AREA = "functional_area"
    CUSTOMER_ATTRIBUTE = "customer_attribute"
    IMPORTANCE = "importance"
    OTHER = "other"


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    company: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=40)


class CustomerUpdate(BaseModel):
    """Partial update; empty values leave the stored value as it is."""

    name: Optional[str] = Field(default=None, max_length=200)
    company: Optional[str] = Field(default=None, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=40)

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email_is_unset(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value


class CustomerOut(BaseModel):
    id: str
    name: str
    company: str
    email: str
    phone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    category: Optional[TagCategory] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class TagUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    category: Optional[TagCategory] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class TagOut(BaseModel):
    id: str
    name: str
    color: str
    category: TagCategory
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TagCategoryCount(BaseModel):
    category: TagCategory
    count: int


class MessageOut(BaseModel):
    message: str
