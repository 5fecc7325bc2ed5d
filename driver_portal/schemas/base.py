from pydantic import BaseModel, field_validator
from typing import Any, Dict, Optional

from driver_portal.utils.datetime_utils import to_instant

TIMESTAMP_FIELDS = ("last_punch_in", "last_punch_out", "created_at", "updated_at", "timestamp", "date")


class DocumentModel(BaseModel):
    """Entity stored as a camelCase JSON document in either store"""

    id: Optional[str] = None

    class Config:
        populate_by_name = True
        use_enum_values = True

    @field_validator(*TIMESTAMP_FIELDS, mode="before", check_fields=False)
    @classmethod
    def _normalize_timestamp(cls, value: Any):
        return to_instant(value)

    def to_document(self, include_id: bool = False) -> Dict[str, Any]:
        """JSON-ready document with camelCase keys and ISO timestamps"""
        exclude = None if include_id else {"id"}
        return self.model_dump(by_alias=True, mode="json", exclude=exclude)

    @classmethod
    def from_document(cls, doc_id: Optional[str], data: Dict[str, Any]):
        payload = dict(data or {})
        if doc_id is not None:
            payload["id"] = doc_id
        return cls.model_validate(payload)
