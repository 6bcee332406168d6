from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path

import pytest

from deviceauth.audit.models import AuditActionType, AuditEntityType, AuditEvent
from deviceauth.audit.service import AuditLogger
from deviceauth.audit.worker import AuditWorker
from deviceauth.core.database import Database
from tests.support import field_cipher


def _event(action: AuditActionType = AuditActionType.LOGIN_SUCCESS) -> AuditEvent:
    return AuditEvent(action_type=action, entity_type=AuditEntityType.SESSION, device_id="dev-1")


class _FailingLogger:
    def __init__(self) -> None:
        self.calls = 0

    def write_event(self, event: AuditEvent) -> int:
        self.calls += 1
        raise RuntimeError("disk full")


def test_worker_writes_queued_events(tmp_path: Path) -> None:
    audit = AuditLogger(Database(tmp_path / "audit.db"), field_cipher())
    worker = AuditWorker(audit, max_size=10)

    async def scenario() -> None:
        await worker.start()
        worker.log_event(_event())
        worker.log_event(_event(AuditActionType.TOKEN_REFRESHED))
        await worker.flush()
        await worker.stop()

    asyncio.run(scenario())

    assert {log.action_type for log in audit.query_logs()} == {"login_success", "token_refreshed"}


def test_full_queue_drops_events_without_raising(caplog: pytest.LogCaptureFixture) -> None:
    worker = AuditWorker(_FailingLogger(), max_size=2)

    with caplog.at_level(logging.WARNING, logger="deviceauth.audit.worker"):
        for _ in range(5):
            worker.log_event(_event())

    assert worker.pending_count == 2
    assert worker.dropped_count == 3
    assert "audit_queue_full_event_dropped" in caplog.text


def test_write_failures_are_logged_and_discarded(caplog: pytest.LogCaptureFixture) -> None:
    failing = _FailingLogger()
    worker = AuditWorker(failing, max_size=10)

    async def scenario() -> None:
        await worker.start()
        worker.log_event(_event())
        worker.log_event(_event())
        await worker.flush()
        await worker.stop()

    with caplog.at_level(logging.ERROR, logger="deviceauth.audit.worker"):
        asyncio.run(scenario())

    assert failing.calls == 2
    assert worker.pending_count == 0
    assert "audit_write_failed" in caplog.text


def test_stop_drains_pending_events(tmp_path: Path) -> None:
    audit = AuditLogger(Database(tmp_path / "audit.db"), field_cipher())
    worker = AuditWorker(audit, max_size=10)

    async def scenario() -> None:
        await worker.start()
        for _ in range(3):
            worker.log_event(_event())
        await worker.stop()

    asyncio.run(scenario())

    assert len(audit.query_logs()) == 3


def test_events_logged_from_other_threads_are_handed_to_the_loop(tmp_path: Path) -> None:
    audit = AuditLogger(Database(tmp_path / "audit.db"), field_cipher())
    worker = AuditWorker(audit, max_size=10)
    enqueued_on: list[int] = []
    enqueue = worker._enqueue

    def tracking_enqueue(event: AuditEvent) -> None:
        enqueued_on.append(threading.get_ident())
        enqueue(event)

    worker._enqueue = tracking_enqueue  # type: ignore[method-assign]

    async def scenario() -> int:
        await worker.start()
        await asyncio.gather(*(asyncio.to_thread(worker.log_event, _event()) for _ in range(4)))
        await worker.flush()
        await worker.stop()
        return threading.get_ident()

    loop_thread = asyncio.run(scenario())

    assert enqueued_on == [loop_thread] * 4
    assert len(audit.query_logs()) == 4
