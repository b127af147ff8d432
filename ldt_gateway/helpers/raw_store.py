import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional


class InMemoryRawMessageStore:
    """Append-only store del payload crudo; unico lugar donde vive el contenido."""

    def __init__(self):
        self._items: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def persist(self, raw: bytes, tag: str = "") -> str:
        with self._lock:
            ref = f"mem://raw/{len(self._items) + 1:08d}" + (f"_{tag}" if tag else "")
            self._items[ref] = bytes(raw)
            return ref

    def load(self, ref: str) -> Optional[bytes]:
        with self._lock:
            return self._items.get(ref)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class FileRawMessageStore:
    """Archiva cada mensaje crudo en <root>/recv/YYYYmmdd_HHMMSS_<uuid>_<tag>.ldt."""

    def __init__(self, root: str, direction: str = "recv"):
        self.base = Path(root) / direction
        self.base.mkdir(parents=True, exist_ok=True)

    def persist(self, raw: bytes, tag: str = "") -> str:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        name = f"{stamp}_{uuid.uuid4().hex[:8]}_{tag or 'message'}.ldt"
        p = self.base / name
        # nunca sobreescribe: append-only
        with open(p, "xb") as f:
            f.write(raw)
        return str(p)

    def load(self, ref: str) -> Optional[bytes]:
        p = Path(ref)
        return p.read_bytes() if p.exists() else None
