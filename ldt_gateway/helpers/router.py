import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ldt_gateway.commons.errors import GatewayError, InternalError
from ldt_gateway.commons.ldt_engine import LDTEngine
from ldt_gateway.commons.logger import logger
from ldt_gateway.helpers.raw_store import InMemoryRawMessageStore
from ldt_gateway.parsers.models import RawMessage
from ldt_gateway.services.result_builder import ResultBuilder
from ldt_gateway.validation.validators import validate_ldt_message_or_raise


def _replace_none(obj):
    if isinstance(obj, dict):
        return {k: _replace_none(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_replace_none(x) for x in obj]
    elif obj is None:
        return ""
    return obj


@dataclass(frozen=True)
class IngestOutcome:
    message_id: str
    result_id: str
    assigned: bool
    assigned_recipient_id: Optional[str]
    record_count: int
    content_hash: str
    summary: dict


class IngestRouter:
    """raw bytes -> parser -> extractor -> matcher/builder -> repository.

    La autenticacion (WebhookGate) ocurre antes; este flujo tambien lo usa la
    importacion de ficheros, que es un origen local de confianza.
    """

    def __init__(self, engine: LDTEngine, builder: ResultBuilder, raw_store=None):
        self.engine = engine
        self.builder = builder
        self.raw_store = raw_store if raw_store is not None else InMemoryRawMessageStore()

    def archive_raw(self, raw: bytes, content_hash: str, tag: str = "result") -> RawMessage:
        ref = self.raw_store.persist(raw, tag=tag)
        return RawMessage(
            id=f"msg_{uuid.uuid4().hex}",
            received_at=datetime.now(timezone.utc),
            raw_bytes=raw,
            content_hash=content_hash,
            storage_ref=ref,
        )

    def process(self, raw: bytes, json_hint: bool = False, tag: str = "result") -> IngestOutcome:
        content_hash = hashlib.sha256(raw).hexdigest()
        text = self.engine.decode(raw)
        records = self.engine.parse(text, json_hint=json_hint)
        try:
            validate_ldt_message_or_raise(records)
        except GatewayError:
            logger.warning(f"Mensaje sin registros validos hash={content_hash}")
            raise

        ids = self.engine.extract(records)
        try:
            raw_msg = self.archive_raw(raw, content_hash, tag=tag)
            outcome = self.builder.build(ids, raw_msg.id)
        except GatewayError:
            raise
        except Exception as ex:
            logger.exception(f"Fallo persistiendo mensaje hash={content_hash}: {type(ex).__name__}")
            raise InternalError("Result repository unavailable") from ex

        logger.info(
            f"Mensaje {raw_msg.id} procesado hash={content_hash} registros={len(records)} "
            f"resultado={outcome.result_id} asignado={outcome.assigned}"
        )
        return IngestOutcome(
            message_id=raw_msg.id,
            result_id=outcome.result_id,
            assigned=outcome.assigned,
            assigned_recipient_id=outcome.assigned_recipient_id,
            record_count=len(records),
            content_hash=content_hash,
            summary=_replace_none(self.engine.summary(records, ids)),
        )
