import logging

import pytest
from pydantic import ValidationError

from sigcheck.app.events import (
    LoggingEventEmitter,
    NullEventEmitter,
    SignatureCheckEvent,
    SignatureCheckEventType,
)

pytestmark = pytest.mark.anyio


async def test_logging_emitter_writes_one_record_per_event(caplog):
    emitter = LoggingEventEmitter(logging.getLogger("sigcheck.events.test"))

    with caplog.at_level(logging.INFO, logger="sigcheck.events.test"):
        await emitter.emit(
            SignatureCheckEvent(
                check_id="check-001",
                event_type=SignatureCheckEventType.CHECK_STARTED,
                details={"document_bytes": 10},
            )
        )
        await emitter.emit(
            SignatureCheckEvent(
                check_id="check-001",
                event_type=SignatureCheckEventType.CHECK_FAILED,
            )
        )

    assert [r.message for r in caplog.records] == ["check_started", "check_failed"]
    assert [r.levelno for r in caplog.records] == [logging.INFO, logging.WARNING]
    assert caplog.records[0].check_id == "check-001"
    assert caplog.records[0].details == {"document_bytes": 10}
    assert caplog.records[1].details == {}


async def test_null_emitter_accepts_events():
    await NullEventEmitter().emit(
        SignatureCheckEvent(
            check_id="check-002",
            event_type=SignatureCheckEventType.CHECK_COMPLETED,
        )
    )


def test_events_are_immutable():
    event = SignatureCheckEvent(
        check_id="check-003",
        event_type=SignatureCheckEventType.PACKAGE_OPENED,
    )

    with pytest.raises(ValidationError):
        event.check_id = "other"
