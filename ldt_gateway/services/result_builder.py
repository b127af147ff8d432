import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Optional

from ldt_gateway.commons.logger import logger
from ldt_gateway.parsers.models import ExtractedIdentifiers, Result
from ldt_gateway.services.recipients import RecipientDirectory
from ldt_gateway.services.repository import InMemoryResultRepository


@dataclass(frozen=True)
class BuildOutcome:
    result_id: str
    assigned: bool
    assigned_recipient_id: Optional[str] = None


def new_result_id() -> str:
    return f"res_{uuid.uuid4().hex}"


class ResultBuilder:
    def __init__(
        self,
        directory: RecipientDirectory,
        repository: InMemoryResultRepository,
        test_type: str = "LDT Import",
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.directory = directory
        self.repository = repository
        self.test_type = test_type
        self._now = now

    def build(self, ids: ExtractedIdentifiers, source_message_id: str) -> BuildOutcome:
        """Crea exactamente un Result por mensaje aceptado.

        Sin coincidencia en el directorio el resultado queda sin asignar y
        aparece en ``list_unassigned()`` para revision manual.
        """
        ts = self._now()
        # match-then-insert atomico; append es idempotente por source_message_id
        with self.repository.transaction():
            existing = self.repository.find_by_source_message(source_message_id)
            if existing is not None:
                return BuildOutcome(
                    result_id=existing.id,
                    assigned=existing.assigned_recipient_id is not None,
                    assigned_recipient_id=existing.assigned_recipient_id,
                )

            recipient = self.directory.find_recipient(ids.facility_code, ids.practitioner_code)
            result = Result(
                id=new_result_id(),
                created_at=ts,
                updated_at=ts,
                source_message_id=source_message_id,
                facility_code=ids.facility_code,
                practitioner_code=ids.practitioner_code,
                patient_display_name=ids.patient.display_name,
                test_type=self.test_type,
                status="Final",  # la ingesta no distingue preliminares
                assigned_recipient_id=recipient.id if recipient else None,
                patient=replace(ids.patient),
                tests=list(ids.tests),
            )
            self.repository.append(result)

        if recipient:
            logger.info(f"Resultado {result.id} asignado a {recipient.id}")
        else:
            logger.info(
                f"Resultado {result.id} sin destinatario (facility={ids.facility_code}, "
                f"practitioner={ids.practitioner_code}); en cola de revision"
            )
        return BuildOutcome(
            result_id=result.id,
            assigned=recipient is not None,
            assigned_recipient_id=recipient.id if recipient else None,
        )
