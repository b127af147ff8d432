"""Identifier extraction over parsed LDT records.

Matchers run in a fixed order. Each one is a pure function that looks at a
single record and returns ``(field, value)`` or ``None``. The extractor applies
matcher 1 over every record, then matcher 2 over every record, and so on, so a
later matcher overwrites what an earlier one wrote for the same field, and
within one matcher a later record overwrites an earlier one.

Patient fields come from two matchers: the ``8200``-prefixed form first, then
the bare ``3101``/``3102``/``3103``/``3110`` types. Bare types therefore win
when both are present. The fallback only fills codes that are still unset.
"""
import re
from typing import Callable, List, Optional, Tuple

from .models import ExtractedIdentifiers, ParsedRecord, TestValue

Match = Optional[Tuple[str, str]]
Matcher = Callable[[ParsedRecord], Match]

FACILITY = "facility_code"
PRACTITIONER = "practitioner_code"

_FACILITY_RE = re.compile(r"^[0-9]{9}$")
_PRACTITIONER_RE = re.compile(r"^[0-9]{7}$")
_DIGITS_RE = re.compile(r"^[0-9]+$")

PATIENT_FIELDS = {
    "3101": "last_name",
    "3102": "first_name",
    "3103": "birth_date",
    "3110": "gender",
}


def as_facility_code(val: Optional[str]) -> Optional[str]:
    val = (val or "").strip()
    return val if _FACILITY_RE.match(val) else None


def as_practitioner_code(val: Optional[str]) -> Optional[str]:
    val = (val or "").strip()
    if _PRACTITIONER_RE.match(val):
        return val
    # LANR de 9 digitos: 7 digitos + 2 de especialidad
    if _FACILITY_RE.match(val):
        return val[:7]
    return None


def match_canonical_facility(rec: ParsedRecord) -> Match:
    if rec.record_type != "0201":
        return None
    val = rec.content if rec.field_id == "7981" else rec.value
    code = as_facility_code(val)
    return (FACILITY, code) if code else None


def match_canonical_practitioner(rec: ParsedRecord) -> Match:
    if rec.record_type != "0212":
        return None
    val = rec.content if rec.field_id == "7733" else rec.value
    code = as_practitioner_code(val)
    return (PRACTITIONER, code) if code else None


def match_lab_block_codes(rec: ParsedRecord) -> Match:
    if rec.record_type != "8100":
        return None
    if rec.field_id in ("0201", "0020"):
        code = as_facility_code(rec.content)
        return (FACILITY, code) if code else None
    if rec.field_id in ("0202", "0021"):
        code = as_practitioner_code(rec.content)
        return (PRACTITIONER, code) if code else None
    return None


def match_patient_block(rec: ParsedRecord) -> Match:
    if rec.record_type == "8200" and rec.field_id == "3000" and rec.content:
        return ("patient_id", rec.content)
    if rec.record_type != "8200" or rec.field_id not in PATIENT_FIELDS:
        return None
    return (PATIENT_FIELDS[rec.field_id], rec.content) if rec.content else None


def match_bare_patient(rec: ParsedRecord) -> Match:
    if rec.record_type not in PATIENT_FIELDS:
        return None
    return (PATIENT_FIELDS[rec.record_type], rec.value) if rec.value else None


MATCHERS: List[Matcher] = [
    match_canonical_facility,
    match_canonical_practitioner,
    match_lab_block_codes,
    match_patient_block,
    match_bare_patient,
]


def _apply(out: ExtractedIdentifiers, field: str, value: str) -> None:
    if field in (FACILITY, PRACTITIONER):
        setattr(out, field, value)
    else:
        setattr(out.patient, field, value)


def _fallback(records: List[ParsedRecord], out: ExtractedIdentifiers) -> None:
    for rec in records:
        content = rec.content.strip()
        if out.facility_code is None and _FACILITY_RE.match(content):
            out.facility_code = content
        elif out.practitioner_code is None and _PRACTITIONER_RE.match(content):
            out.practitioner_code = content
        if out.facility_code and out.practitioner_code:
            return


def _collect_tests(records: List[ParsedRecord]) -> List[TestValue]:
    """8400 blocks (7260 abre un test nuevo) y idents 8410 en LDT nativo."""
    tests: List[TestValue] = []
    current: Optional[TestValue] = None
    attrs = {"7261": "name", "7262": "value", "7263": "unit", "7264": "reference_range"}
    for rec in records:
        if rec.record_type == "8400":
            if rec.field_id == "7260" and rec.content:
                current = TestValue(code=rec.content)
                tests.append(current)
            elif current is not None and rec.field_id in attrs and rec.content:
                setattr(current, attrs[rec.field_id], rec.content)
        elif rec.record_type == "8410" and rec.value:
            current = None
            tests.append(TestValue(code=rec.value))
    return tests


def extract_identifiers(records: List[ParsedRecord]) -> ExtractedIdentifiers:
    out = ExtractedIdentifiers()
    for matcher in MATCHERS:
        for rec in records:
            hit = matcher(rec)
            if hit:
                _apply(out, *hit)

    if out.facility_code is None or out.practitioner_code is None:
        _fallback(records, out)

    for rec in records:
        if rec.record_type == "8100" and rec.field_id == "0201" and not _DIGITS_RE.match(rec.content):
            out.lab_name = rec.content or out.lab_name
        elif rec.record_type == "0203" and rec.value:
            out.lab_name = rec.value
        elif rec.record_type == "8300" and rec.field_id == "7303" and rec.content:
            out.request_id = rec.content
        elif rec.record_type == "8310" and rec.value:
            out.request_id = rec.value
    out.tests = _collect_tests(records)
    return out


def split_by_patient(records: List[ParsedRecord]) -> List[List[ParsedRecord]]:
    """Corta un export multi-paciente en bloques (uno por bloque 8200)."""
    blocks: List[List[ParsedRecord]] = []
    prev_type = None
    for rec in records:
        if rec.record_type == "8200" and prev_type != "8200":
            blocks.append([])
        if blocks:
            blocks[-1].append(rec)
        prev_type = rec.record_type
    return blocks
