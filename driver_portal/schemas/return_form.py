from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

from .base import DocumentModel


class ReturnFormStatus(str, Enum):
    SUBMITTED = "submitted"


class ReturnFormDraft(BaseModel):
    """Fields a driver fills in before submission"""
    order_no: str = ""
    customer_name: str = ""
    organization: str = ""
    reason: str = ""
    date: Optional[datetime] = None


class ReturnForm(DocumentModel):
    driver_id: str = Field(..., alias="driverId")
    driver_email: str = Field("", alias="driverEmail")
    order_no: str = Field(..., alias="orderNo")
    customer_name: str = Field(..., alias="customerName")
    organization: str
    reason: str
    date: Optional[datetime] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    status: str = ReturnFormStatus.SUBMITTED.value


class PrintRequest(ReturnForm):
    """Body of the print endpoint: a return form plus the id it was stored under"""
    form_id: str = Field(..., alias="formId")

    @classmethod
    def from_form(cls, form: ReturnForm) -> "PrintRequest":
        return cls(**form.model_dump(), form_id=form.id)


class PrintResponse(BaseModel):
    success: bool
    message: str
    form_id: Optional[str] = Field(None, alias="formId")
    printer_ip: Optional[str] = Field(None, alias="printerIP")

    class Config:
        populate_by_name = True
