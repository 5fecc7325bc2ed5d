"""
Return form submission: validate, persist through the gateway, then print.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from driver_portal.exceptions import ValidationError
from driver_portal.printing.dispatch import PrintResult
from driver_portal.schemas.return_form import PrintRequest, ReturnForm, ReturnFormDraft, ReturnFormStatus
from driver_portal.services.service_result import ResultCode, ServiceResult
from driver_portal.sync.gateway import SyncGateway
from driver_portal.sync.results import WriteFailed
from driver_portal.sync.session import Session
from driver_portal.utils.datetime_utils import utc_now
from driver_portal.utils.validators import require_non_empty

logger = logging.getLogger(__name__)


class Printer(Protocol):
    async def print_return_form(self, form: PrintRequest) -> PrintResult:
        raise NotImplementedError


@dataclass(frozen=True)
class SubmissionResult:
    form: ReturnForm
    printed: bool
    print_message: str
    printer_ip: Optional[str] = None


def validate_draft(draft: ReturnFormDraft) -> ReturnFormDraft:
    """
    Trim and check required fields.

    Raises:
        ValidationError: naming the first missing field
    """
    return ReturnFormDraft(
        order_no=require_non_empty(draft.order_no, "Order number is required"),
        customer_name=require_non_empty(draft.customer_name, "Customer name is required"),
        organization=require_non_empty(draft.organization, "Organization is required"),
        reason=require_non_empty(draft.reason, "Return reason is required"),
        date=draft.date,
    )


class ReturnFormService:
    """Submits and (re)prints return forms"""

    def __init__(self, gateway: SyncGateway, printer: Printer):
        self.gateway = gateway
        self.printer = printer

    async def submit(self, session: Session, draft: ReturnFormDraft) -> ServiceResult:
        """
        Persist a return form and send it to the printer.

        A print failure never undoes the submission: the result is still
        successful, with ``printed`` set to False on the SubmissionResult.
        """
        try:
            clean = validate_draft(draft)
        except ValidationError as e:
            return ServiceResult.fail(ResultCode.VALIDATION_ERROR, str(e))

        now = utc_now()
        form = ReturnForm(
            driver_id=session.user_id,
            driver_email=session.email,
            order_no=clean.order_no,
            customer_name=clean.customer_name,
            organization=clean.organization,
            reason=clean.reason,
            date=clean.date or now,
            created_at=now,
            status=ReturnFormStatus.SUBMITTED.value,
        )

        result = await self.gateway.submit_return_form(form)
        if isinstance(result, WriteFailed):
            return ServiceResult.fail(ResultCode.WRITE_FAILED, f"Failed to submit return form: {result.reason}")

        stored = result.value
        logger.info(f"Return form {stored.id} submitted by {session.email} ({result.source.value})")

        print_result = await self.printer.print_return_form(PrintRequest.from_form(stored))
        submission = SubmissionResult(
            form=stored,
            printed=print_result.success,
            print_message=print_result.message,
            printer_ip=print_result.printer_ip,
        )

        if print_result.success:
            return ServiceResult.ok("Return form submitted and sent to printer!", submission)
        return ServiceResult.ok("Return form submitted, but printing failed. Please contact admin.", submission)

    async def reprint(self, session: Session, form: ReturnForm) -> ServiceResult:
        """Admin re-print of a stored form"""
        if not session.is_admin:
            return ServiceResult.fail(ResultCode.FORBIDDEN, "Only admins can reprint return forms")

        print_result = await self.printer.print_return_form(PrintRequest.from_form(form))
        if print_result.success:
            return ServiceResult.ok("Return form sent to printer successfully!", print_result)
        return ServiceResult.fail(ResultCode.PRINT_FAILED, "Failed to print return form. Please check printer connection.", print_result)
