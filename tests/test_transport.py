# flake8: noqa
from pathlib import Path

from watchdog.events import FileCreatedEvent, FileMovedEvent

from ldt_gateway.commons.logger import logger, setup_logging
from ldt_gateway.helpers.file_transport import FileSender, InboxHandler, read_when_stable

from tests.samples import LINES_SAMPLE


def test_file_sender_writes_without_leftovers(tmp_path):
    sender = FileSender(str(tmp_path / "outbox"), "export_{timestamp}_{uuid}.ldt")
    p = Path(sender.send(LINES_SAMPLE))
    assert p.read_bytes() == LINES_SAMPLE.encode("utf-8")
    assert [f.name for f in p.parent.iterdir()] == [p.name]


def test_read_when_stable(tmp_path):
    f = tmp_path / "a.ldt"
    f.write_bytes(b"0180201793860200")
    assert read_when_stable(f, delay=0) == b"0180201793860200"
    assert read_when_stable(tmp_path / "missing.ldt", delay=0) is None


def test_inbox_handler_filters_by_pattern(tmp_path):
    seen = []
    handler = InboxHandler("*.ldt", seen.append)
    handler.dispatch(FileCreatedEvent(str(tmp_path / "a.ldt")))
    handler.dispatch(FileCreatedEvent(str(tmp_path / "b.txt")))
    handler.dispatch(FileCreatedEvent(str(tmp_path / "c.ldt.part")))
    handler.dispatch(FileMovedEvent(str(tmp_path / "d.tmp"), str(tmp_path / "d.ldt")))
    assert [p.name for p in seen] == ["a.ldt", "d.ldt"]


def test_setup_logging_writes_daily_file(tmp_path):
    setup_logging(str(tmp_path), "debug", console=False)
    logger.info("hash=abc procesado")
    logger.remove()
    files = list(tmp_path.rglob("app.log"))
    assert len(files) == 1
    assert "hash=abc procesado" in files[0].read_text(encoding="utf-8")


def test_modules_share_the_configured_logger():
    from loguru import logger as loguru_logger

    from ldt_gateway.services import results_service
    from ldt_gateway.security import webhook_gate

    assert logger is loguru_logger
    assert results_service.logger is logger
    assert webhook_gate.logger is logger
