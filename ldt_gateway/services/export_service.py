from typing import Iterable, Optional

from ldt_gateway.commons.logger import logger
from ldt_gateway.commons.types import LabInfo
from ldt_gateway.generators.ldt_generator import generate_ldt
from ldt_gateway.helpers.file_transport import FileSender
from ldt_gateway.parsers.models import Result
from ldt_gateway.services.repository import InMemoryResultRepository


class ExportService:
    def __init__(self, repository: InMemoryResultRepository, transport_cfg, paths, lab: Optional[LabInfo] = None):
        self.repository = repository
        self.transport_cfg = transport_cfg
        self.paths = paths
        self.lab = lab or LabInfo()

    def render(self, results: Iterable[Result]) -> str:
        return generate_ldt(list(results), self.lab)

    def export(
        self,
        results: Optional[Iterable[Result]] = None,
        recipient_id: Optional[str] = None,
        only_unassigned: bool = False,
    ) -> Optional[str]:
        """Escribe un fichero LDT en el outbox y devuelve su ruta.

        Sin ``results`` toma los del repositorio, filtrados por destinatario
        (control de acceso del llamador) o solo los no asignados.
        """
        if results is None:
            if only_unassigned:
                results = self.repository.list_unassigned()
            else:
                results = [
                    r
                    for r in self.repository.list_all()
                    if recipient_id is None or r.assigned_recipient_id == recipient_id
                ]
        results = list(results)
        if not results:
            logger.info("Nada que exportar")
            return None

        ldt = self.render(results)
        sender = FileSender(self.paths.outbox, self.transport_cfg.export["filename_pattern"])
        p = sender.send(ldt)
        logger.info(f"Export LDT escrito en {p} ({len(results)} resultado(s))")
        return p
