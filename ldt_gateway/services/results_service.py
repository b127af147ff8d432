import asyncio
import json
import os
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ldt_gateway.commons.errors import GatewayError
from ldt_gateway.commons.ldt_normalizer import decode_payload
from ldt_gateway.commons.logger import logger
from ldt_gateway.helpers.file_transport import FileWatcher
from ldt_gateway.helpers.router import IngestRouter


def generate_inbox_filename(source: str, origin: str = "file", extension: str = "json") -> str:
    """
    Genera nombre de archivo para archive, con timestamp y origen.
    Ej:  20250821-170605-123456_file_lab_0815.json
    """
    if not isinstance(source, str):
        raise TypeError(f"Invalid type for source: expected str, got {type(source).__name__}")

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S-%f")  # Para orden natural
    base_name = os.path.splitext(os.path.basename(source))[0]
    safe_base = re.sub(r"[^a-zA-Z0-9_\-]", "_", base_name) or "message"
    return f"{ts}_{origin}_{safe_base}.{extension}"


class ResultsService:
    """Importacion de ficheros LDT dejados en el inbox (origen local de confianza)."""

    def __init__(self, router: IngestRouter, transport_cfg, paths):
        self.router = router
        self.transport_cfg = transport_cfg
        self.paths = paths
        Path(paths.archive).mkdir(parents=True, exist_ok=True)
        Path(paths.error).mkdir(parents=True, exist_ok=True)

    def _to_error(self, raw: bytes, src: Optional[str]) -> Path:
        err_name = Path(src).name if src else "result.err.ldt"
        errp = Path(self.paths.error) / err_name
        errp.write_text(decode_payload(raw), encoding="utf-8")
        if src and Path(src).exists():
            Path(src).unlink()
        return errp

    async def _process_bytes(self, raw: bytes, src: Optional[str] = None):
        try:
            outcome = await asyncio.to_thread(self.router.process, raw, False, "file")
        except GatewayError as ge:
            # Este archivo está mal: llévalo a error/ y NO tumbar el servicio
            errp = self._to_error(raw, src)
            logger.error(f"Validación falló para {errp.name}: {ge.detail}")
            return None
        except Exception as ex:
            errp = self._to_error(raw, src)
            logger.exception(f"Error procesando resultado: {ex}. Movido a {errp}")
            return None

        filename = generate_inbox_filename(src or "message")
        out_json = Path(self.paths.archive) / filename
        summary = dict(outcome.summary, message_id=outcome.message_id, result_id=outcome.result_id)
        summary["assigned"] = outcome.assigned
        out_json.write_text(json.dumps(summary, ensure_ascii=False, indent=2), encoding="utf-8")
        logger.info(f"Resultado procesado y archivado: {out_json}")

        # mueve el LDT procesado a archive/ldt/
        if src and Path(src).exists():
            dst_dir = Path(self.paths.archive) / "ldt"
            dst_dir.mkdir(parents=True, exist_ok=True)
            shutil.move(src, dst_dir / Path(src).name)
        return outcome

    async def _process_backlog(self, glob_pat: str) -> int:
        inbox = Path(self.paths.inbox)
        files = sorted(inbox.glob(glob_pat))
        if not files:
            return 0
        logger.info(f"Backlog detectado: {len(files)} archivo(s) en {inbox}")
        for f in files:
            try:
                raw = f.read_bytes()
            except OSError as e:
                logger.warning(f"No se pudo leer {f}: {e}; reintento breve...")
                await asyncio.sleep(0.1)
                raw = f.read_bytes()
            # Asegura que un fallo no detenga el backlog completo
            try:
                await self._process_bytes(raw, str(f))
            except Exception as ex:
                logger.exception(f"Fallo inesperado con {f}: {ex}")
        return len(files)

    def _glob(self, glob_pat: Optional[str]) -> str:
        return glob_pat or self.transport_cfg.file.get("filename_glob", "*.ldt")

    async def run_once(self, glob_pat: Optional[str] = None) -> int:
        return await self._process_backlog(self._glob(glob_pat))

    async def load_archive(self, glob_pat: Optional[str] = None) -> int:
        """Recarga los LDT ya archivados en archive/ldt/ sin moverlos ni reescribir resumenes."""
        files = sorted((Path(self.paths.archive) / "ldt").glob(self._glob(glob_pat)))
        loaded = 0
        for f in files:
            try:
                await asyncio.to_thread(self.router.process, f.read_bytes(), False, "archive")
                loaded += 1
            except GatewayError as ge:
                logger.warning(f"Archivado no recargable {f.name}: {ge.detail}")
        if files:
            logger.info(f"Archivo recargado: {loaded}/{len(files)} fichero(s)")
        return loaded

    async def run_file_mode(self, glob_pat: Optional[str] = None, stop_event: Optional[asyncio.Event] = None):
        glob_pat = self._glob(glob_pat)
        loop = asyncio.get_running_loop()

        # 1) Procesar backlog existente
        await self._process_backlog(glob_pat)

        # 2) Arrancar watcher para nuevos archivos
        watcher = FileWatcher(self.paths.inbox, glob_pat, self._process_bytes, loop)
        watcher.start()
        logger.info("Escuchando carpeta de resultados...")
        try:
            await (stop_event or asyncio.Event()).wait()
        finally:
            watcher.stop()
