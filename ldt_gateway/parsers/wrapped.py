import re
from typing import List

from .base import parse_record
from .models import ParsedRecord

COLUMN_RE = re.compile(r"<column1>(.*?)</column1>", re.DOTALL)


def parse_wrapped(ldt: str, strict: bool = False) -> List[ParsedRecord]:
    """Parse the XML-ish export of the lab gateway: one record per
    <column1>...</column1> segment, e.g. '<column1>01380008230</column1>'.
    """
    records: List[ParsedRecord] = []
    for m in COLUMN_RE.finditer(ldt or ""):
        raw = (m.group(1) or "").strip()
        if not raw:
            continue
        rec = parse_record(raw, strict=strict)
        if rec is not None:
            records.append(rec)
    return records
