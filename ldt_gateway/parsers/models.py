# ===============================
# File: ldt_gateway/parsers/models.py
# ===============================
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

UNKNOWN_PATIENT = "Unknown Patient"


@dataclass(frozen=True)
class ParsedRecord:
    raw_line: str
    length: str  # 3 digitos
    record_type: str  # 4 digitos
    field_id: str  # 4 chars (1 en la forma corta)
    content: str = ""
    # Texto despues del tipo (field id + contenido). En LDT nativo el valor
    # va justo despues del tipo, p.ej. '0133101Bohr' -> 'Bohr'.
    value: str = ""


@dataclass
class Patient:
    last_name: Optional[str] = None
    first_name: Optional[str] = None
    birth_date: Optional[str] = None  # YYYYMMDD
    gender: Optional[str] = None  # M/W/F/U
    patient_id: Optional[str] = None

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or UNKNOWN_PATIENT


@dataclass
class TestValue:
    code: str
    name: Optional[str] = None
    value: Optional[str] = None
    unit: Optional[str] = None
    reference_range: Optional[str] = None


@dataclass
class ExtractedIdentifiers:
    facility_code: Optional[str] = None  # 9 digitos
    practitioner_code: Optional[str] = None  # 7 digitos
    patient: Patient = field(default_factory=Patient)
    tests: List[TestValue] = field(default_factory=list)
    lab_name: Optional[str] = None
    request_id: Optional[str] = None


@dataclass(frozen=True)
class RawMessage:
    id: str
    received_at: datetime
    raw_bytes: bytes
    content_hash: str
    storage_ref: Optional[str] = None


@dataclass(frozen=True)
class Recipient:
    id: str
    email: str
    facility_code: str
    practitioner_code: str
    role: str = "doctor"


@dataclass
class Result:
    id: str
    created_at: datetime
    updated_at: datetime
    source_message_id: str
    patient_display_name: str
    test_type: str
    status: str = "Final"  # Final | Preliminary
    facility_code: Optional[str] = None
    practitioner_code: Optional[str] = None
    assigned_recipient_id: Optional[str] = None
    patient: Optional[Patient] = None
    tests: List[TestValue] = field(default_factory=list)
