from pydantic import Field
from typing import Optional
from datetime import datetime
from enum import Enum

from .base import DocumentModel


class PunchType(str, Enum):
    PUNCH_IN = "punch-in"
    PUNCH_OUT = "punch-out"


class PunchRecord(DocumentModel):
    driver_id: str = Field(..., alias="driverId")
    driver_email: str = Field("", alias="driverEmail")
    type: PunchType
    timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")
