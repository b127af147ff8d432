import asyncio
import os
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import PatternMatchingEventHandler
from watchdog.observers import Observer

from ldt_gateway.commons.logger import logger

PARTIAL_SUFFIX = ".part"


class FileSender:
    """Escribe ficheros LDT en el outbox.

    Se escribe primero ``<nombre>.part`` y luego se renombra, asi quien vigile
    el outbox nunca ve un fichero a medias.
    """

    def __init__(self, outbox: str, pattern: str):
        self.outbox = Path(outbox)
        self.outbox.mkdir(parents=True, exist_ok=True)
        self.pattern = pattern

    def filename(self) -> str:
        return self.pattern.format(
            timestamp=datetime.now().strftime("%Y%m%d%H%M%S"), uuid=uuid.uuid4().hex[:8]
        )

    def send(self, ldt_text: str) -> str:
        target = self.outbox / self.filename()
        tmp = target.with_name(target.name + PARTIAL_SUFFIX)
        # bytes tal cual: el LDT ya trae sus CRLF
        tmp.write_bytes(ldt_text.encode("utf-8"))
        os.replace(tmp, target)
        return str(target)


def read_when_stable(path: Path, attempts: int = 10, delay: float = 0.05) -> Optional[bytes]:
    """Lee el fichero cuando su tamaño deja de cambiar; None si ya no existe."""
    last_size = -1
    for _ in range(attempts):
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return None
        if size == last_size:
            break
        last_size = size
        time.sleep(delay)
    try:
        return path.read_bytes()
    except FileNotFoundError:
        # se movio justo ahora (otro proceso o el backlog)
        return None


class InboxHandler(PatternMatchingEventHandler):
    def __init__(self, glob: str, submit: Callable[[Path], None]):
        super().__init__(
            patterns=[glob], ignore_patterns=[f"*{PARTIAL_SUFFIX}"], ignore_directories=True
        )
        self._submit = submit

    def on_created(self, event):
        self._submit(Path(event.src_path))

    def on_moved(self, event):
        self._submit(Path(event.dest_path))


class FileWatcher:
    """Vigila el inbox y entrega (bytes, ruta) a una corrutina del loop principal."""

    def __init__(self, inbox: str, glob: str, on_message_async, loop: asyncio.AbstractEventLoop):
        self.inbox = Path(inbox)
        self.inbox.mkdir(parents=True, exist_ok=True)
        self.loop = loop
        self.on_message_async = on_message_async
        self.handler = InboxHandler(glob, self._submit)
        self.observer = Observer()

    def _submit(self, path: Path) -> None:
        raw = read_when_stable(path)
        if raw is None:
            logger.debug(f"Fichero desaparecido antes de leerlo: {path.name}")
            return
        # hilo de watchdog -> loop principal (thread-safe)
        asyncio.run_coroutine_threadsafe(self.on_message_async(raw, str(path)), self.loop)

    def start(self):
        self.observer.schedule(self.handler, str(self.inbox), recursive=False)
        self.observer.start()

    def stop(self):
        self.observer.stop()
        self.observer.join()
