from datetime import datetime
from typing import Optional

from driver_portal.schemas.return_form import PrintRequest
from driver_portal.utils.datetime_utils import format_locale_date, format_locale_datetime, utc_now

RECEIPT_WIDTH = 37
HEAVY_RULE = "=" * RECEIPT_WIDTH
LIGHT_RULE = "-" * RECEIPT_WIDTH


def _section(title: str) -> list:
    return [LIGHT_RULE, title, LIGHT_RULE]


def render_return_form(form: PrintRequest, printed_at: Optional[datetime] = None,
                       timezone_str: str = "UTC") -> str:
    """Plain-text receipt for a return form; the reason is printed verbatim"""
    lines = [
        "",
        HEAVY_RULE,
        "        RETURN FORM",
        HEAVY_RULE,
        f"Form ID: {form.form_id}",
        f"Submitted: {format_locale_datetime(printed_at or utc_now(), timezone_str)}",
        *_section("ORDER DETAILS"),
        f"Order Number: {form.order_no}",
        f"Return Date: {format_locale_date(form.date, timezone_str)}",
        *_section("CUSTOMER INFORMATION"),
        f"Customer Name: {form.customer_name}",
        f"Organization: {form.organization}",
        *_section("RETURN DETAILS"),
        "Reason for Return:",
        form.reason,
        *_section("DRIVER INFORMATION"),
        f"Driver: {form.driver_email}",
        f"Driver ID: {form.driver_id}",
        LIGHT_RULE,
        f"STATUS: {(form.status or '').upper()}",
        HEAVY_RULE,
        "",
    ]
    return "\n".join(lines)
