"""
Driver-facing business rules: PIN-gated punch-in, punch-out and PIN management.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from driver_portal.exceptions import ValidationError
from driver_portal.schemas.punch import PunchType
from driver_portal.schemas.return_form import ReturnForm
from driver_portal.schemas.user import UserRecord
from driver_portal.services.service_result import ResultCode, ServiceResult
from driver_portal.sync.gateway import Feed, SyncGateway
from driver_portal.sync.results import WriteFailed
from driver_portal.sync.session import Session
from driver_portal.utils.datetime_utils import to_iso, utc_now
from driver_portal.utils.validators import require_new_pin

logger = logging.getLogger(__name__)


class DriverService:
    """Punch clock and PIN operations for the signed-in driver"""

    def __init__(self, gateway: SyncGateway):
        self.gateway = gateway

    async def punch_in(self, session: Session, pin: str, at: Optional[datetime] = None) -> ServiceResult:
        """
        Start a shift after checking the driver's PIN.

        Returns:
            ServiceResult with the PunchRecord on success; ``driver_not_found``
            or ``invalid_pin`` without writing anything otherwise
        """
        profile = await self.gateway.get_user_profile(session.user_id)
        if profile is None:
            return ServiceResult.fail(ResultCode.DRIVER_NOT_FOUND, "Driver not found. Please set up your PIN first.")

        if not profile.has_pin or profile.pin != pin:
            logger.info(f"Rejected punch-in for {session.email}: invalid PIN")
            return ServiceResult.fail(ResultCode.INVALID_PIN, "Invalid PIN")

        result = await self.gateway.record_punch(session.user_id, session.email, PunchType.PUNCH_IN, base=profile, at=at)
        if isinstance(result, WriteFailed):
            return ServiceResult.fail(ResultCode.WRITE_FAILED, f"Failed to punch in: {result.reason}")

        return ServiceResult.ok("Punched in", result.value)

    async def punch_out(self, session: Session, at: Optional[datetime] = None) -> ServiceResult:
        profile = await self.gateway.get_user_profile(session.user_id)
        result = await self.gateway.record_punch(session.user_id, session.email, PunchType.PUNCH_OUT, base=profile, at=at,
                                                 create_profile=profile is None)
        if isinstance(result, WriteFailed):
            return ServiceResult.fail(ResultCode.WRITE_FAILED, f"Failed to punch out: {result.reason}")

        return ServiceResult.ok("Punched out", result.value)

    async def set_pin(self, session: Session, new_pin: str, confirm_pin: str) -> ServiceResult:
        """First-time PIN setup"""
        try:
            require_new_pin(new_pin, confirm_pin)
        except ValidationError as e:
            return ServiceResult.fail(ResultCode.VALIDATION_ERROR, str(e))

        profile = await self.gateway.get_user_profile(session.user_id)
        result = await self.gateway.set_pin(session.user_id, session.email, new_pin, base=profile)
        if isinstance(result, WriteFailed):
            return ServiceResult.fail(ResultCode.WRITE_FAILED, f"Failed to set PIN: {result.reason}")

        return ServiceResult.ok("PIN set successfully!", result.value)

    async def change_pin(self, session: Session, current_pin: str, new_pin: str, confirm_pin: str) -> ServiceResult:
        profile = await self.gateway.get_user_profile(session.user_id)
        if profile is None or profile.pin != current_pin:
            return ServiceResult.fail(ResultCode.INVALID_PIN, "Current PIN is incorrect")

        try:
            require_new_pin(new_pin, confirm_pin, label="New PIN")
        except ValidationError as e:
            return ServiceResult.fail(ResultCode.VALIDATION_ERROR, str(e))

        patch = {"pin": new_pin, "updatedAt": to_iso(utc_now())}
        result = await self.gateway.update_user_profile(session.user_id, patch, base=profile)
        if isinstance(result, WriteFailed):
            return ServiceResult.fail(ResultCode.WRITE_FAILED, f"Failed to change PIN: {result.reason}")

        return ServiceResult.ok("PIN changed successfully!", result.value)

    async def status(self, session: Session) -> ServiceResult:
        """Current profile; a driver with no stored profile gets an empty default"""
        profile = await self.gateway.get_user_profile(session.user_id)
        if profile is None:
            profile = UserRecord(id=session.user_id, email=session.email)

        return ServiceResult.ok("Working" if profile.currently_working else "Off Duty", profile)

    async def watch_return_forms(self, session: Session,
                                 on_update: Callable[[List[ReturnForm]], None]) -> Feed:
        """Live list of the driver's own return forms, closed on sign-out"""
        feed = await self.gateway.list_return_forms(on_update, driver_id=session.user_id)
        return session.track(feed)
