import asyncio
import os
import time
from pathlib import Path
from typing import Optional

import httpx
import typer
import uvicorn

from ldt_gateway.api.app import build_context, create_app
from ldt_gateway.commons.logger import setup_logging
from ldt_gateway.commons.types import load_settings
from ldt_gateway.security.webhook_gate import sign_body
from ldt_gateway.services.export_service import ExportService
from ldt_gateway.services.results_service import ResultsService

app = typer.Typer(add_completion=False, help="LDT Gateway")


def _init(config: Optional[str]):
    settings = load_settings(config)
    logger = setup_logging(settings.paths.logs_root, os.getenv("LOG_LEVEL", "INFO"))
    return settings, logger


@app.command()
def serve(
    config: Optional[str] = typer.Option(None, help="ruta al settings.yaml"),
    host: Optional[str] = typer.Option(None, help="IP local para escuchar"),
    port: Optional[int] = typer.Option(None, help="Puerto HTTP"),
):
    """Levanta el endpoint POST /ingest."""
    settings, logger = _init(config)
    http = settings.transport.http
    host = host or http.get("host", "0.0.0.0")
    port = port or int(http.get("port", 5000))
    logger.log("INFO", f"LDT Gateway escuchando en {host}:{port}")
    uvicorn.run(create_app(settings), host=host, port=port)


@app.command("import-files")
def import_files(
    config: Optional[str] = typer.Option(None, help="ruta al settings.yaml"),
    watch: bool = typer.Option(True, help="seguir escuchando el inbox tras el backlog"),
):
    """Importa los ficheros LDT del inbox (backlog y, opcionalmente, nuevos)."""
    settings, logger = _init(config)
    logger.log("INFO", "Iniciando lectura de resultados pendientes por procesar")
    ctx = build_context(settings)
    svc = ResultsService(ctx.router, settings.transport, settings.paths)
    if watch:
        asyncio.run(svc.run_file_mode())
    else:
        n = asyncio.run(svc.run_once())
        logger.log("INFO", f"Pasada terminada: {n} archivo(s), {len(ctx.repository)} resultado(s)")


@app.command()
def export(
    config: Optional[str] = typer.Option(None, help="ruta al settings.yaml"),
    recipient: Optional[str] = typer.Option(None, help="solo resultados de este destinatario"),
    unassigned: bool = typer.Option(False, help="solo resultados sin asignar"),
):
    """Escribe en el outbox el LDT de los resultados importados.

    Carga primero lo ya archivado en archive/ldt/ y luego importa el inbox
    (esos ficheros pasan a archive/ldt/), asi cada ejecucion exporta todo.
    """
    settings, logger = _init(config)
    ctx = build_context(settings)
    svc = ResultsService(ctx.router, settings.transport, settings.paths)

    async def _load():
        await svc.load_archive()
        await svc.run_once()

    asyncio.run(_load())
    exporter = ExportService(ctx.repository, settings.transport, settings.paths, settings.lab)
    p = exporter.export(recipient_id=recipient, only_unassigned=unassigned)
    if p:
        typer.echo(p)


@app.command()
def sign(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="fichero LDT"),
    secret: Optional[str] = typer.Option(None, envvar="LDT_WEBHOOK_SECRET", help="secreto HMAC"),
    config: Optional[str] = typer.Option(None, help="ruta al settings.yaml"),
):
    """Imprime las cabeceras X-Timestamp / X-Signature para un fichero."""
    secret = secret or load_settings(config).gate.secret
    if not secret:
        raise typer.BadParameter("Falta el secreto (LDT_WEBHOOK_SECRET)")
    ts = str(int(time.time() * 1000))
    typer.echo(f"X-Timestamp: {ts}")
    typer.echo(f"X-Signature: {sign_body(secret, ts, file.read_bytes())}")


@app.command()
def send(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="fichero LDT"),
    url: str = typer.Option("http://127.0.0.1:5000/ingest", help="endpoint de ingesta"),
    secret: Optional[str] = typer.Option(None, envvar="LDT_WEBHOOK_SECRET", help="secreto HMAC"),
    idempotency_key: Optional[str] = typer.Option(None, help="cabecera Idempotency-Key"),
    config: Optional[str] = typer.Option(None, help="ruta al settings.yaml"),
):
    """Firma un fichero LDT y lo envia al endpoint."""
    secret = secret or load_settings(config).gate.secret
    if not secret:
        raise typer.BadParameter("Falta el secreto (LDT_WEBHOOK_SECRET)")
    raw = file.read_bytes()
    ts = str(int(time.time() * 1000))
    headers = {
        "Content-Type": "text/plain",
        "X-Timestamp": ts,
        "X-Signature": sign_body(secret, ts, raw),
    }
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key
    resp = httpx.post(url, content=raw, headers=headers, timeout=30.0)
    typer.echo(f"{resp.status_code} {resp.text}")
    if resp.status_code >= 400:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
