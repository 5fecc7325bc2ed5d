"""
Print endpoint: receives a stored return form and sends it to the LAN printer.
"""

import logging
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from driver_portal.dependencies import get_printer_dispatch
from driver_portal.printing.dispatch import PrinterDispatchService
from driver_portal.schemas.return_form import PrintRequest, PrintResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["printing"])


@router.post(
    "/print-return",
    response_model=PrintResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    summary="Print a return form",
)
async def print_return(
    form_data: PrintRequest,
    printer: PrinterDispatchService = Depends(get_printer_dispatch)
):
    """
    Discover a printer and print the form.

    - No printer on the network: 200 with `success: false`
    - Transmission failure or unexpected error: 500 with `success: false`
    """
    try:
        result = await printer.print_return_form(form_data)
    except Exception as e:
        logger.error(f"Print error: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Failed to print return form"}
        )

    if not result.success and result.printer_ip:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Failed to print return form"}
        )

    if not result.success:
        return PrintResponse(success=False, message=result.message)

    return PrintResponse(
        success=True,
        message=result.message,
        form_id=form_data.form_id,
        printer_ip=result.printer_ip
    )
