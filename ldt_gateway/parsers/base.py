import re
from typing import List, Optional

from .models import ParsedRecord

WRAPPED_MARKER = "<column1>"
MAX_CONTENT_LEN = 500

_LENGTH_RE = re.compile(r"^[0-9]{3}$")
_TYPE_RE = re.compile(r"^[0-9]{4}$")
_FIELD_RE = re.compile(r"^[A-Za-z0-9*]{4}$")
_SHORT_FIELD_RE = re.compile(r"^[A-Za-z0-9]$")
_UNSAFE_CHARS = re.compile(r"[<>\"'&]")


def split_lines(text: str) -> List[str]:
    """Divide en lineas (CRLF, LF o CR) y omite las vacias."""
    return [line.strip() for line in re.split(r"\r\n|\n|\r", text or "") if line.strip()]


def sanitize_content(val: str) -> str:
    val = _UNSAFE_CHARS.sub("", val or "")
    val = re.sub(r"\r\n|\r", "\n", val)
    return val[:MAX_CONTENT_LEN]


def detect_framing(text: str) -> str:
    """Return 'WRAPPED' or 'LINES'."""
    if WRAPPED_MARKER in (text or ""):
        return "WRAPPED"
    return "LINES"


def parse_record(raw: str, strict: bool = False) -> Optional[ParsedRecord]:
    """Valida la cabecera de un registro y lo devuelve como ParsedRecord.

    Devuelve None si el registro no cumple la estructura; el llamador lo
    descarta sin abortar el mensaje.
    """
    if not raw or len(raw) < 8:
        return None

    length = raw[0:3]
    record_type = raw[3:7]
    if not _LENGTH_RE.match(length) or not _TYPE_RE.match(record_type):
        return None
    # Variante endurecida: solo tipos 8000-8599
    if strict and not 8000 <= int(record_type) <= 8599:
        return None

    if len(raw) >= 11:
        field_id = raw[7:11]
        if not _FIELD_RE.match(field_id):
            return None
        return ParsedRecord(
            raw_line=raw,
            length=length,
            record_type=record_type,
            field_id=field_id,
            content=sanitize_content(raw[11:]),
            value=sanitize_content(raw[7:]),
        )

    # Forma corta (8-10 chars): solo cabecera
    field_id = raw[7:8]
    if not _SHORT_FIELD_RE.match(field_id):
        return None
    return ParsedRecord(
        raw_line=raw,
        length=length,
        record_type=record_type,
        field_id=field_id,
        value=sanitize_content(raw[7:]),
    )
