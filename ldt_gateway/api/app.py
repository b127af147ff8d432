"""HTTP surface of the gateway.

Run with: uvicorn ldt_gateway.api.app:create_app --factory
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ldt_gateway.commons.errors import GatewayError, InternalError
from ldt_gateway.commons.ldt_engine import LDTEngine
from ldt_gateway.commons.logger import logger
from ldt_gateway.commons.types import Settings, load_settings
from ldt_gateway.helpers.raw_store import FileRawMessageStore, InMemoryRawMessageStore
from ldt_gateway.helpers.router import IngestRouter
from ldt_gateway.security.webhook_gate import RateLimiter, SourceAllowList, WebhookGate
from ldt_gateway.services.recipients import RecipientDirectory
from ldt_gateway.services.repository import InMemoryResultRepository
from ldt_gateway.services.result_builder import ResultBuilder
from ldt_gateway.validation.validators import is_json_media_type


@dataclass
class GatewayContext:
    settings: Settings
    gate: WebhookGate
    router: IngestRouter
    repository: InMemoryResultRepository
    directory: RecipientDirectory


def build_context(
    settings: Settings,
    directory: Optional[RecipientDirectory] = None,
    repository: Optional[InMemoryResultRepository] = None,
    gate: Optional[WebhookGate] = None,
) -> GatewayContext:
    if directory is None:
        directory = (
            RecipientDirectory.from_yaml(settings.recipients_file)
            if settings.recipients_file
            else RecipientDirectory()
        )
    repository = repository if repository is not None else InMemoryResultRepository()
    if gate is None:
        g = settings.gate
        gate = WebhookGate(
            secret=g.secret,
            rate_limiter=RateLimiter(limit=g.rate_limit_per_minute),
            allow_list=SourceAllowList(g.allowed_sources),
            tolerance_sec=g.timestamp_tolerance_sec,
            replay_ttl_sec=g.replay_ttl_sec,
        )
    raw_store = (
        FileRawMessageStore(settings.paths.raw_store)
        if settings.paths.raw_store
        else InMemoryRawMessageStore()
    )
    engine = LDTEngine({"parsers": settings.parsers.model_dump()})
    builder = ResultBuilder(directory, repository, test_type=settings.default_test_type)
    router = IngestRouter(engine, builder, raw_store=raw_store)
    return GatewayContext(
        settings=settings, gate=gate, router=router, repository=repository, directory=directory
    )


def create_app(
    settings: Optional[Settings] = None, context: Optional[GatewayContext] = None
) -> FastAPI:
    if context is None:
        context = build_context(settings or load_settings())
    ctx = context
    timeout = ctx.settings.gate.processing_timeout_sec

    app = FastAPI(title="LDT Gateway", version="1.0.0")
    app.state.ctx = ctx

    @app.exception_handler(GatewayError)
    async def _gateway_error(request: Request, exc: GatewayError):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail})

    @app.get("/health")
    async def health():
        return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.post("/ingest")
    async def ingest(request: Request):
        raw = await request.body()
        content_type = request.headers.get("content-type")
        source = request.client.host if request.client else "unknown"

        decision = ctx.gate.admit(
            raw,
            content_type=content_type,
            timestamp=request.headers.get("x-timestamp"),
            signature=request.headers.get("x-signature"),
            idempotency_key=request.headers.get("idempotency-key"),
            source=source,
        )
        if decision.duplicate:
            return JSONResponse(status_code=200, content={"message": "duplicate ignored"})

        def _release_if_failed(fut: "asyncio.Future"):
            if fut.cancelled() or fut.exception() is not None:
                ctx.gate.release(decision.replay_key)

        # El trabajo va blindado: ni un timeout ni la desconexion del cliente
        # cancelan la escritura de un mensaje ya verificado.
        task = asyncio.ensure_future(
            run_in_threadpool(ctx.router.process, raw, is_json_media_type(content_type))
        )
        try:
            outcome = await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(_release_if_failed)
            logger.error(f"Timeout procesando entrega hash={decision.body_hash}")
            raise InternalError("Processing timeout")
        except asyncio.CancelledError:
            task.add_done_callback(_release_if_failed)
            raise
        except Exception:
            ctx.gate.release(decision.replay_key)
            raise

        return JSONResponse(
            status_code=202,
            content={
                "success": True,
                "messageId": outcome.message_id,
                "resultId": outcome.result_id,
                "assigned": outcome.assigned,
                "assignedTo": outcome.assigned_recipient_id,
                "recordCount": outcome.record_count,
            },
        )

    return app
