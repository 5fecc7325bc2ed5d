from .user import UserRole, UserRecord
from .punch import PunchType, PunchRecord
from .return_form import ReturnFormStatus, ReturnFormDraft, ReturnForm, PrintRequest, PrintResponse

__all__ = [
    "UserRole", "UserRecord",
    "PunchType", "PunchRecord",
    "ReturnFormStatus", "ReturnFormDraft", "ReturnForm", "PrintRequest", "PrintResponse"
]
