"""
HTTP client for a print endpoint running on another host (the machine that
sits on the printer's LAN).
"""

import logging
from typing import Optional

import httpx

from driver_portal.printing.dispatch import PrintResult
from driver_portal.schemas.return_form import PrintRequest

logger = logging.getLogger(__name__)


class HttpPrintClient:
    """Posts return forms to ``POST /api/print-return``"""

    def __init__(self, endpoint_url: str, timeout: float = 90.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.endpoint_url = endpoint_url
        self.timeout = timeout
        self._transport = transport

    async def print_return_form(self, form: PrintRequest) -> PrintResult:
        """
        Ask the print endpoint to print a form.

        A non-2xx status, an unreadable body or ``success: false`` all mean
        "submitted but not printed".
        """
        payload = form.to_document()

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Print service request failed: {e}")
            return PrintResult(False, f"Print service unreachable: {e}", form_id=form.form_id)

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}

        if not response.is_success:
            logger.error(f"Print service returned HTTP {response.status_code}")
            return PrintResult(False, body.get("message") or "Failed to print return form",
                               form_id=form.form_id)

        return PrintResult(
            success=bool(body.get("success")),
            message=body.get("message", ""),
            printer_ip=body.get("printerIP"),
            form_id=form.form_id,
        )
