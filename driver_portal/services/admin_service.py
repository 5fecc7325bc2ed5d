"""
Admin dashboard aggregates over drivers, return forms and punch records.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from driver_portal.exceptions import AuthorizationError
from driver_portal.schemas.punch import PunchRecord
from driver_portal.schemas.return_form import ReturnForm
from driver_portal.schemas.user import UserRecord
from driver_portal.services.service_result import ResultCode, ServiceResult
from driver_portal.sync.gateway import Feed, SyncGateway
from driver_portal.sync.session import Session
from driver_portal.utils.datetime_utils import is_same_day, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardSummary:
    total_drivers: int
    active_drivers: int
    currently_working: int
    returns_today: int
    punch_records: int


def summarize(drivers: List[UserRecord], forms: List[ReturnForm], punches: List[PunchRecord],
              today: Optional[datetime] = None, timezone_str: str = "UTC") -> DashboardSummary:
    today = today or utc_now()
    return DashboardSummary(
        total_drivers=len(drivers),
        active_drivers=sum(1 for d in drivers if d.is_active),
        currently_working=sum(1 for d in drivers if d.currently_working),
        returns_today=sum(1 for f in forms if is_same_day(f.created_at, today, timezone_str)),
        punch_records=len(punches),
    )


class AdminService:
    """Read-only views for administrators"""

    def __init__(self, gateway: SyncGateway, timezone: str = "UTC"):
        self.gateway = gateway
        self.timezone = timezone

    async def dashboard(self, session: Session, today: Optional[datetime] = None) -> ServiceResult:
        """One-shot dashboard numbers from whichever store is reachable"""
        if not session.is_admin:
            return ServiceResult.fail(ResultCode.FORBIDDEN, "Admin access required")

        drivers = await self.gateway.fetch_drivers()
        forms = await self.gateway.fetch_return_forms()
        punches = await self.gateway.fetch_punch_records()
        return ServiceResult.ok("Dashboard loaded", summarize(drivers, forms, punches, today, self.timezone))

    async def watch(self, session: Session,
                    on_drivers: Callable[[List[UserRecord]], None],
                    on_forms: Callable[[List[ReturnForm]], None],
                    on_punches: Callable[[List[PunchRecord]], None]) -> List[Feed]:
        """
        Open the three dashboard feeds; they are closed when the session signs out.

        Raises:
            AuthorizationError: for non-admin sessions
        """
        if not session.is_admin:
            raise AuthorizationError("Admin access required")

        feeds = [
            await self.gateway.list_drivers(on_drivers),
            await self.gateway.list_return_forms(on_forms),
            await self.gateway.list_punch_records(on_punches),
        ]
        return [session.track(feed) for feed in feeds]
