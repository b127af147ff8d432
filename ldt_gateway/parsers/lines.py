from typing import List

from .base import parse_record, split_lines
from .models import ParsedRecord


def parse_lines(ldt: str, strict: bool = False) -> List[ParsedRecord]:
    # Un registro por linea no vacia; los invalidos se descartan en silencio
    records: List[ParsedRecord] = []
    for line in split_lines(ldt):
        rec = parse_record(line, strict=strict)
        if rec is not None:
            records.append(rec)
    return records
