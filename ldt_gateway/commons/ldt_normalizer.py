import json
from typing import Dict, List

from ldt_gateway.parsers.base import detect_framing
from ldt_gateway.parsers.lines import parse_lines
from ldt_gateway.parsers.models import ExtractedIdentifiers, ParsedRecord
from ldt_gateway.parsers.wrapped import parse_wrapped

# Claves donde el gateway mete el texto LDT cuando envia JSON
JSON_TEXT_KEYS = ("data", "payload", "content", "message", "ldt")


def decode_payload(raw: bytes) -> str:
    # utf-8-sig: el BOM inicial se descarta (si no, el primer registro no parsea)
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def unescape_newlines(text: str) -> str:
    return text.replace("\\r\\n", "\r\n").replace("\\n", "\n").replace("\\r", "\r")


def unwrap_json(text: str, json_hint: bool = False) -> str:
    """Devuelve el texto LDT embebido en un wrapper JSON.

    Sin ninguna de las claves conocidas (o con JSON invalido) el cuerpo entero
    se trata como texto opaco; no parsea a ningun registro y el llamador
    responde 422.
    """
    if not (json_hint or text.lstrip().startswith("{")):
        return text
    try:
        obj = json.loads(text)
    except ValueError:
        return text
    if isinstance(obj, str):
        return unescape_newlines(obj)
    if not isinstance(obj, dict):
        return text
    for key in JSON_TEXT_KEYS:
        val = obj.get(key)
        if isinstance(val, str):
            return unescape_newlines(val)
    return text


class LDTNormalizer:
    def __init__(self, autodetect: bool = True, override: str = "", strict: bool = False):
        self.autodetect = autodetect
        self.override = (override or "").upper()
        self.strict = strict

    def framing(self, ldt_text: str) -> str:
        return self.override or (detect_framing(ldt_text) if self.autodetect else "LINES")

    def normalize(self, text: str, json_hint: bool = False) -> List[ParsedRecord]:
        ldt_text = unwrap_json(text, json_hint=json_hint)
        if self.framing(ldt_text) == "WRAPPED":
            return parse_wrapped(ldt_text, strict=self.strict)
        return parse_lines(ldt_text, strict=self.strict)

    def to_summary_payload(self, records: List[ParsedRecord], ids: ExtractedIdentifiers) -> Dict:
        """Resumen JSON del mensaje (sin datos de paciente ni contenido crudo)."""
        return {
            "record_count": len(records),
            "record_types": sorted({r.record_type for r in records}),
            "facility_code": ids.facility_code,
            "practitioner_code": ids.practitioner_code,
            "patient_identified": bool(ids.patient.first_name or ids.patient.last_name),
            "lab_name": ids.lab_name,
            "request_id": ids.request_id,
            "tests": [t.code for t in ids.tests],
        }
