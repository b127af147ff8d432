"""LDT export: serializes routed results back into the line-record grammar.

Record types used:
    8000  header (software id, creation date/time, character set)
    8100  lab identification (plus facility/practitioner routing codes)
    8200  patient data
    8300  request data
    8400  result data
    8500  end marker

Every line is ``{length:03d}{record_type}{field_id}{content}``, where length
counts the whole record plus the trailing CRLF, so the parser reads the output
back with the same rules it applies to inbound messages.
"""
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from ldt_gateway.commons.types import LabInfo
from ldt_gateway.parsers.base import sanitize_content
from ldt_gateway.parsers.models import Patient, Result, TestValue

SOFTWARE_ID = "LABOR_RESULTS_V2.1"
CHARSET = "UTF-8"

# Result no guarda valores numericos de laboratorio; cuando no trae tests
# estructurados se usan estos valores fijos por tipo de test (aproximacion).
SYNTHETIC_VALUES: Dict[str, Tuple[str, str, str]] = {
    "Blood Count": ("4.5", "10^6/μL", "4.0-5.5"),
    "Urinalysis": ("Normal", "", "Normal"),
    "Microbiology": ("No growth", "", "No growth expected"),
}
DEFAULT_SYNTHETIC = ("Normal", "", "Normal")


def _ymd(dt: datetime) -> str:
    return dt.strftime("%Y%m%d")


def _hms(dt: datetime) -> str:
    return dt.strftime("%H%M%S")


def format_record(record_type: str, field_id: str, content: str) -> str:
    content = sanitize_content(str(content)).replace("\n", " ")
    length = len(content) + 13  # 3 + 4 + 4 + CRLF
    return f"{length:03d}{record_type}{field_id}{content}"


def synthetic_test(test_type: str) -> TestValue:
    value, unit, ref = SYNTHETIC_VALUES.get(test_type, DEFAULT_SYNTHETIC)
    return TestValue(
        code=test_type.replace(" ", "").upper(),
        name=test_type,
        value=value,
        unit=unit or None,
        reference_range=ref,
    )


def group_by_patient(results: Iterable[Result]) -> "OrderedDict[str, List[Result]]":
    groups: "OrderedDict[str, List[Result]]" = OrderedDict()
    for r in results:
        groups.setdefault(r.patient_display_name, []).append(r)
    return groups


def patient_for_group(display_name: str, first: Result) -> Patient:
    src = first.patient or Patient()
    if src.last_name and src.display_name == display_name:
        return src
    parts = display_name.split()
    return Patient(
        last_name=parts[-1] if parts else "Unknown",
        first_name=" ".join(parts[:-1]) or None,
        birth_date=src.birth_date,
        gender=src.gender,
        patient_id=src.patient_id,
    )


class LDTGenerator:
    def __init__(self):
        self.records: List[str] = []

    def add(self, record_type: str, field_id: str, content: Optional[str]) -> None:
        # Campos vacios no se emiten
        if content is None or content == "":
            return
        self.records.append(format_record(record_type, field_id, content))

    def header(self, now: datetime) -> None:
        self.add("8000", "9218", SOFTWARE_ID)
        self.add("8000", "9103", _ymd(now))
        self.add("8000", "9104", _hms(now))
        self.add("8000", "9106", CHARSET)

    def lab_block(self, lab: LabInfo) -> None:
        self.add("8100", "0201", lab.name)
        self.add("8100", "0203", lab.street)
        self.add("8100", "0204", lab.zip_code)
        self.add("8100", "0205", lab.city)
        self.add("8100", "0247", lab.phone)
        self.add("8100", "0249", lab.email)

    def patient_block(self, patient: Patient, display_name: str) -> None:
        self.add("8200", "3101", patient.last_name or "Unknown")
        self.add("8200", "3102", patient.first_name)
        self.add("8200", "3103", patient.birth_date)
        self.add("8200", "3110", patient.gender or "U")
        self.add("8200", "3000", patient.patient_id or display_name.replace(" ", "").upper())

    def request_block(self, first: Result) -> None:
        self.add("8300", "7303", first.id)
        self.add("8300", "7304", _ymd(first.created_at))
        self.add("8300", "7311", first.facility_code)
        if first.facility_code:
            self.add("8300", "7313", f"Practice {first.facility_code}")
        # codigos de enrutamiento, legibles por el extractor al reimportar
        self.add("8100", "0020", first.facility_code)
        self.add("8100", "0021", first.practitioner_code)

    def result_block(self, result: Result) -> None:
        tests = result.tests or [synthetic_test(result.test_type)]
        for t in tests:
            self.add("8400", "7260", t.code)
            self.add("8400", "7261", t.name)
            self.add("8400", "7262", t.value)
            self.add("8400", "7263", t.unit)
            self.add("8400", "7264", t.reference_range)
        self.add("8400", "7265", "F" if result.status == "Final" else "P")
        self.add("8400", "7268", _ymd(result.created_at))
        self.add("8400", "7269", _hms(result.created_at))

    def footer(self) -> None:
        self.add("8500", "9218", "EOF")

    def generate(self, results: Iterable[Result], lab: Optional[LabInfo] = None, now: Optional[datetime] = None) -> str:
        self.records = []
        self.header(now or datetime.now(timezone.utc))
        self.lab_block(lab or LabInfo())
        for display_name, group in group_by_patient(results).items():
            first = group[0]
            self.patient_block(patient_for_group(display_name, first), display_name)
            self.request_block(first)
            for result in group:
                self.result_block(result)
        self.footer()
        return "\r\n".join(self.records)


def generate_ldt(results: Iterable[Result], lab_info: Optional[LabInfo] = None, now: Optional[datetime] = None) -> str:
    """Export interface: results (already access-filtered) -> LDT text."""
    return LDTGenerator().generate(results, lab_info, now=now)
