# ldt_gateway/validation/validators.py
import re
from typing import List, Optional

from pydantic import BaseModel, field_validator

from ldt_gateway.commons.errors import NoParsableRecordsError
from ldt_gateway.parsers.models import ParsedRecord

SIGNATURE_RE = re.compile(r"^sha256=([0-9a-fA-F]{64})$")
TIMESTAMP_RE = re.compile(r"[0-9]{1,16}")

TEXT_MEDIA_TYPES = ("text/plain",)
JSON_MEDIA_TYPES = ("application/json", "text/json")


class DeliveryHeaders(BaseModel):
    timestamp: str  # unix millis
    signature: str  # sha256=<hex>
    idempotency_key: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _numeric(cls, v: str):
        v = (v or "").strip()
        if not TIMESTAMP_RE.fullmatch(v):
            raise ValueError("X-Timestamp debe ser unix millis")
        return v

    @field_validator("signature")
    @classmethod
    def _sha256_hex(cls, v: str):
        m = SIGNATURE_RE.match((v or "").strip())
        if not m:
            raise ValueError("X-Signature debe ser sha256=<hex>")
        return m.group(1).lower()

    @field_validator("idempotency_key")
    @classmethod
    def _blank_is_none(cls, v: Optional[str]):
        v = (v or "").strip()
        if len(v) > 200:
            raise ValueError("Idempotency-Key demasiado largo")
        return v or None


# --------- Utilidades de media type ----------
def media_type_of(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_json_media_type(content_type: Optional[str]) -> bool:
    mt = media_type_of(content_type)
    return mt in JSON_MEDIA_TYPES or (mt.startswith("application/") and mt.endswith("+json"))


def is_supported_media_type(content_type: Optional[str]) -> bool:
    return media_type_of(content_type) in TEXT_MEDIA_TYPES or is_json_media_type(content_type)


def validate_ldt_message_or_raise(records: List[ParsedRecord]):
    """Un mensaje sin ningun registro valido se rechaza (422)."""
    if not records:
        raise NoParsableRecordsError("No valid LDT records found")
