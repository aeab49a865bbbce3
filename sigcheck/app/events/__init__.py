from .models import SignatureCheckEvent, SignatureCheckEventType
from .emitter import (
    LoggingEventEmitter,
    NullEventEmitter,
    SignatureCheckEventEmitter,
)

__all__ = [
    "SignatureCheckEvent",
    "SignatureCheckEventType",
    "SignatureCheckEventEmitter",
    "NullEventEmitter",
    "LoggingEventEmitter",
]
