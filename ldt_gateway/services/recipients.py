from typing import Dict, Iterable, Optional, Tuple

import yaml

from ldt_gateway.commons.logger import logger
from ldt_gateway.parsers.models import Recipient


class RecipientDirectory:
    """Lookup exacto de (facility_code, practitioner_code) -> Recipient.
    Solo lectura para el pipeline; sin coincidencias parciales ni difusas.
    """

    def __init__(self, recipients: Iterable[Recipient] = ()):
        self._by_pair: Dict[Tuple[str, str], Recipient] = {}
        for r in recipients:
            self._by_pair[(r.facility_code, r.practitioner_code)] = r

    @classmethod
    def from_yaml(cls, path: str) -> "RecipientDirectory":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        items = [
            Recipient(
                id=str(r["id"]),
                email=r["email"],
                facility_code=str(r["facility_code"]),
                practitioner_code=str(r["practitioner_code"]),
                role=r.get("role", "doctor"),
            )
            for r in data.get("recipients", [])
        ]
        logger.info(f"Directorio de destinatarios cargado: {len(items)} entrada(s)")
        return cls(items)

    def find_recipient(
        self, facility_code: Optional[str], practitioner_code: Optional[str]
    ) -> Optional[Recipient]:
        if not facility_code or not practitioner_code:
            return None
        return self._by_pair.get((facility_code, practitioner_code))

    def __len__(self) -> int:
        return len(self._by_pair)
