from __future__ import annotations

import logging
from typing import Protocol

from sigcheck.app.events.models import SignatureCheckEvent, SignatureCheckEventType


class SignatureCheckEventEmitter(Protocol):
    """
    Receives one event per phase of a signature check.

    emit is awaited inline on the request path, so implementations should
    return quickly. The coordinator logs and discards anything emit raises.
    """

    async def emit(self, event: SignatureCheckEvent) -> None:
        ...


class NullEventEmitter:
    """Discards every event. Default when run_check is given no emitter."""

    async def emit(self, event: SignatureCheckEvent) -> None:
        return


class LoggingEventEmitter:
    """Forward events to a standard logger, one record per event."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("sigcheck.events")

    async def emit(self, event: SignatureCheckEvent) -> None:
        level = (
            logging.WARNING
            if event.event_type is SignatureCheckEventType.CHECK_FAILED
            else logging.INFO
        )
        self._logger.log(
            level,
            event.event_type.value,
            extra={
                "check_id": event.check_id,
                "event_id": str(event.event_id),
                "details": event.details or {},
            },
        )
