from typing import Any, Dict, List, Tuple

import yaml

from ldt_gateway.commons.ldt_normalizer import LDTNormalizer, decode_payload
from ldt_gateway.parsers.extractor import extract_identifiers
from ldt_gateway.parsers.models import ExtractedIdentifiers, ParsedRecord


class LDTEngine:
    """Engine facade that loads the parser config and exposes parse/extract.
    Accepts a YAML path, an already loaded dict or nothing (defaults).
    """

    def __init__(self, config_path_or_obj: Any = None):
        # Soportar rutas o dict ya cargado
        if isinstance(config_path_or_obj, str):
            with open(config_path_or_obj, "r", encoding="utf-8") as f:
                self.cfg = yaml.safe_load(f) or {}
        elif isinstance(config_path_or_obj, dict):
            self.cfg = config_path_or_obj
        else:
            self.cfg = {}

        parsers_cfg = self.cfg.get("parsers", {}) or {}
        autodetect = bool(parsers_cfg.get("autodetect", True))
        override = parsers_cfg.get("override", "")
        strict = bool(parsers_cfg.get("strict_record_types", False))
        self.normalizer = LDTNormalizer(autodetect=autodetect, override=override, strict=strict)

    def decode(self, raw: bytes) -> str:
        return decode_payload(raw)

    def parse(self, ldt_text: str, json_hint: bool = False) -> List[ParsedRecord]:
        return self.normalizer.normalize(ldt_text, json_hint=json_hint)

    def extract(self, records: List[ParsedRecord]) -> ExtractedIdentifiers:
        return extract_identifiers(records)

    def parse_and_extract(
        self, ldt_text: str, json_hint: bool = False
    ) -> Tuple[List[ParsedRecord], ExtractedIdentifiers]:
        records = self.parse(ldt_text, json_hint=json_hint)
        return records, self.extract(records)

    def summary(self, records: List[ParsedRecord], ids: ExtractedIdentifiers) -> Dict:
        return self.normalizer.to_summary_payload(records, ids)
