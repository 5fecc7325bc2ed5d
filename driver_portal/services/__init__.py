from .service_result import ResultCode, ServiceResult
from .driver_service import DriverService
from .return_form_service import ReturnFormService, SubmissionResult
from .admin_service import AdminService, DashboardSummary

__all__ = [
    "ResultCode", "ServiceResult",
    "DriverService", "ReturnFormService", "SubmissionResult",
    "AdminService", "DashboardSummary"
]
