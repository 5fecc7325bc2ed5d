from pydantic import Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

from .base import DocumentModel


class UserRole(str, Enum):
    ADMIN = "admin"
    DRIVER = "driver"


class UserRecord(DocumentModel):
    email: str = ""
    role: UserRole = UserRole.DRIVER
    pin: Optional[str] = None
    is_active: bool = Field(True, alias="isActive")
    last_punch_in: Optional[datetime] = Field(None, alias="lastPunchIn")
    last_punch_out: Optional[datetime] = Field(None, alias="lastPunchOut")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    @field_validator("is_active", mode="before")
    @classmethod
    def _default_active(cls, value):
        # Profiles written before the flag existed are active.
        return True if value is None else value

    @property
    def currently_working(self) -> bool:
        return self.last_punch_in is not None and self.last_punch_out is None

    @property
    def has_pin(self) -> bool:
        return bool(self.pin)

